from __future__ import annotations

import asyncio
import enum
import signal
import threading
from typing import Any, Dict, Iterable, Optional, Protocol

from app.core.logging import StructuredLogger

"""
Core Lifecycle (superviseur du process).

Rôle (fonctionnel) :
- Observe les signaux d’arrêt (SIGINT, SIGTERM) et les fautes non gérées du process :
  - exception non interceptée dans un thread (threading.excepthook)
  - erreur asyncio non récupérée (exception handler de la loop, ex : task jamais awaitée)
  - crash de la task du serveur HTTP
- Déroule un arrêt ordonné, toujours jusqu’au bout :
  (a) log de la cause
  (b) fermeture gracieuse du serveur (plus de nouvelles requêtes, fin des requêtes en cours,
      bornée par shutdown_timeout puis arrêt forcé)
  (c) teardown() de chaque ressource gérée (handle DB…)
  (d) code de sortie : 0 pour un signal, 1 pour une faute

États : running -> shutting_down -> terminated (transition à sens unique).

Notes :
- Une seule instance, installée une fois par la racine de composition (app.server).
- Le superviseur ne tue pas le process lui-même : wait() rend le code de sortie à main().
- Un second signal pendant l’arrêt force la sortie immédiate du serveur.
"""


class SupervisorState(str, enum.Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class ManagedResource(Protocol):
    async def teardown(self) -> None: ...


class StoppableServer(Protocol):
    """Sous-ensemble de uvicorn.Server utilisé pour l’arrêt."""

    should_exit: bool
    force_exit: bool


HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

EXIT_CLEAN = 0
EXIT_FAULT = 1


class ProcessSupervisor:
    def __init__(
        self,
        logger: StructuredLogger,
        server: StoppableServer,
        resources: Iterable[ManagedResource] = (),
        *,
        shutdown_timeout: float = 10.0,
    ) -> None:
        self.logger = logger
        self.server = server
        self.resources = list(resources)
        self.shutdown_timeout = shutdown_timeout

        self.state = SupervisorState.RUNNING
        self.exit_code: Optional[int] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._serve_task: Optional[asyncio.Future] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._done = asyncio.Event()
        self._loop_signals: list[signal.Signals] = []
        self._previous_signal_handlers: Dict[signal.Signals, Any] = {}
        self._previous_thread_hook = None

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------
    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._loop is not None:
            raise RuntimeError("ProcessSupervisor déjà installé")

        loop = loop or asyncio.get_running_loop()
        self._loop = loop

        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig)
                self._loop_signals.append(sig)
            except (NotImplementedError, RuntimeError):
                # Windows / hors thread principal : handler classique relayé vers la loop
                self._previous_signal_handlers[sig] = signal.signal(
                    sig, lambda signum, frame: loop.call_soon_threadsafe(self.handle_signal, signum)
                )

        loop.set_exception_handler(self._on_loop_exception)

        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._on_thread_exception

    def uninstall(self) -> None:
        if self._loop is None:
            return

        for sig in self._loop_signals:
            self._loop.remove_signal_handler(sig)
        for sig, previous in self._previous_signal_handlers.items():
            signal.signal(sig, previous)
        self._loop_signals.clear()
        self._previous_signal_handlers.clear()

        self._loop.set_exception_handler(None)
        if self._previous_thread_hook is not None:
            threading.excepthook = self._previous_thread_hook
            self._previous_thread_hook = None

    def supervise(self, serve_task: asyncio.Future) -> None:
        """Rattache la task du serveur : un crash ou un arrêt inattendu déclenche l’arrêt."""
        self._serve_task = serve_task
        serve_task.add_done_callback(self._on_serve_done)

    # ------------------------------------------------------------------
    # Déclencheurs
    # ------------------------------------------------------------------
    def handle_signal(self, sig: int) -> None:
        name = signal.Signals(sig).name

        if self.state is SupervisorState.RUNNING:
            self._begin(f"{name} reçu, arrêt gracieux...", EXIT_CLEAN)
        elif self.state is SupervisorState.SHUTTING_DOWN:
            self.logger.warning(f"{name} reçu pendant l’arrêt, sortie forcée du serveur.")
            self.server.force_exit = True

    def fault(self, exc: BaseException, origin: str = "Uncaught Exception") -> None:
        cause = f"{origin}: {type(exc).__name__}: {exc}"

        if self.state is SupervisorState.RUNNING:
            self._begin(cause, EXIT_FAULT, exc)
        else:
            # Faute pendant l’arrêt : loggée, l’arrêt en cours continue
            self.logger.error(cause, exc_info=(type(exc), exc, exc.__traceback__), cause="fault")

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            self.logger.error(f"Erreur asyncio : {context.get('message', 'inconnue')}")
            return
        self.fault(exc, "Unhandled Rejection")

    def _on_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is not SystemExit and self._loop is not None:
            thread_name = args.thread.name if args.thread is not None else "?"
            self._loop.call_soon_threadsafe(self.fault, args.exc_value, f"Uncaught Exception (thread {thread_name})")

        # Chaîne vers le hook précédent (sortie stderr par défaut)
        if self._previous_thread_hook is not None:
            self._previous_thread_hook(args)

    def _on_serve_done(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.fault(exc, "Server crashed")
        elif self.state is SupervisorState.RUNNING:
            # Le serveur s’est arrêté seul (ex : échec du lifespan startup)
            self._begin("Serveur arrêté de façon inattendue.", EXIT_FAULT)

    # ------------------------------------------------------------------
    # Séquence d’arrêt
    # ------------------------------------------------------------------
    def _begin(self, cause: str, exit_code: int, exc: Optional[BaseException] = None) -> None:
        self.state = SupervisorState.SHUTTING_DOWN
        self.exit_code = exit_code
        loop = self._loop or asyncio.get_running_loop()
        self._shutdown_task = loop.create_task(self._shutdown(cause, exc))

    async def _shutdown(self, cause: str, exc: Optional[BaseException]) -> None:
        # (a) cause
        if exc is None:
            self.logger.log(cause, cause="signal" if self.exit_code == EXIT_CLEAN else "server")
        else:
            self.logger.error(cause, exc_info=(type(exc), exc, exc.__traceback__), cause="fault")

        # (b) serveur
        try:
            await self._close_server()
        except Exception as err:
            self.logger.error("Échec de la fermeture du serveur :", f"{type(err).__name__}: {err}")

        # (c) ressources
        for resource in self.resources:
            try:
                await resource.teardown()
            except Exception as err:
                self.logger.error(
                    f"Échec du teardown de {type(resource).__name__} :",
                    f"{type(err).__name__}: {err}",
                )

        # (d) terminé : main() sort avec exit_code
        self.state = SupervisorState.TERMINATED
        self.logger.log(f"Arrêt terminé (code de sortie {self.exit_code}).")
        self._done.set()

    async def _close_server(self) -> None:
        self.server.should_exit = True

        task = self._serve_task
        if task is None or task.done():
            return

        done, _ = await asyncio.wait({task}, timeout=self.shutdown_timeout)
        if done:
            return

        self.logger.warning(
            f"Requêtes en cours toujours actives après {self.shutdown_timeout:g}s, arrêt forcé."
        )
        self.server.force_exit = True
        done, _ = await asyncio.wait({task}, timeout=1.0)
        if not done:
            task.cancel()
            await asyncio.wait({task})

    async def wait(self) -> int:
        """Attend la fin de la séquence d’arrêt et retourne le code de sortie."""
        await self._done.wait()
        return self.exit_code if self.exit_code is not None else EXIT_CLEAN
