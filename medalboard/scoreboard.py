"""
Main ScoreboardSystem class that orchestrates all components.
"""

from typing import Optional

from aiohttp import web, web_runner
import aiohttp_cors

from .config import BoardConfig
from .database import SQLiteStorage
from .logger import get_logger
from .service import MedalBoard
from .storage import MemoryStorage, Storage
from .web_handlers import WebHandlers

log = get_logger("scoreboard")


class ScoreboardSystem:
    """Festival medal board with its web interface."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        web_port: int = 8081,
        config_path: str = "medalboard.json",
        config: Optional[BoardConfig] = None,
        storage: Optional[Storage] = None,
    ) -> None:
        self.host = host
        self.web_port = web_port

        # Load configuration
        self.config = config or BoardConfig(config_path)
        # Initialize components
        self.storage = storage or self._create_storage()
        self.board = MedalBoard(self.storage, admin_identity=self.config.get("admin", "username"))
        self.web_handlers = WebHandlers(self.board, self.config)

    def _create_storage(self) -> Storage:
        """
        Build the storage backend named in the configuration.

        @return: SQLiteStorage for the sqlite backend, MemoryStorage otherwise
        """
        default_points = self.config.default_points()

        if self.config.get("storage", "backend") == "sqlite":
            db_path = self.config.get("storage", "db_path")
            log.info("Using SQLite storage at %s", db_path)
            return SQLiteStorage(db_path, default_points=default_points)

        log.info("Using in-memory storage; data is lost on restart")
        return MemoryStorage(default_points=default_points)

    async def init_storage(self) -> None:
        """
        Prepare the storage backend and seed default data.

        Creates database tables when needed, then the admin account, score
        settings and default categories.
        """
        if isinstance(self.storage, SQLiteStorage):
            await self.storage.init_db()

        await self.board.bootstrap(
            self.config.get("admin", "username"),
            self.config.get("admin", "password"),
            self.config.get("seed", "default_categories") or [],
        )

    async def _on_startup(self, _: web.Application) -> None:
        await self.init_storage()

    async def _on_cleanup(self, _: web.Application) -> None:
        await self.storage.close()

    def build_app(self) -> web.Application:
        """
        Create the aiohttp application with every route registered.

        @return: Configured web application
        """
        handlers = self.web_handlers
        app = web.Application(
            middlewares=[handlers.error_middleware, handlers.session_middleware]
        )
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
            },
        )

        # Web routes
        app.router.add_get("/", handlers.web_index)

        # Auth
        app.router.add_post("/api/auth/login", handlers.web_api_login)
        app.router.add_post("/api/auth/logout", handlers.web_api_logout)
        app.router.add_get("/api/auth/session", handlers.web_api_session)

        # Teams
        app.router.add_get("/api/teams", handlers.web_api_teams)
        app.router.add_post("/api/teams", handlers.web_api_create_team)
        app.router.add_put("/api/teams/{id}", handlers.web_api_update_team)
        app.router.add_delete("/api/teams/{id}", handlers.web_api_delete_team)

        # Categories
        app.router.add_get("/api/categories", handlers.web_api_categories)
        app.router.add_post("/api/categories", handlers.web_api_create_category)
        app.router.add_delete("/api/categories/{id}", handlers.web_api_delete_category)

        # Events
        app.router.add_get("/api/events", handlers.web_api_events)
        app.router.add_get("/api/events/results", handlers.web_api_event_results)
        app.router.add_post("/api/events", handlers.web_api_create_event)
        app.router.add_post("/api/events/{id}/status", handlers.web_api_update_event_status)
        app.router.add_post("/api/events/{id}/results", handlers.web_api_record_results)
        app.router.add_delete("/api/events/{id}", handlers.web_api_delete_event)

        # Medals
        app.router.add_get("/api/medals", handlers.web_api_medals)
        app.router.add_get("/api/medals/event/{event_id}", handlers.web_api_event_medals)
        app.router.add_post("/api/medals", handlers.web_api_create_medal)
        app.router.add_delete("/api/medals/{id}", handlers.web_api_delete_medal)

        # Scoreboard, publications and settings
        app.router.add_get("/api/scoreboard", handlers.web_api_scoreboard)
        app.router.add_get("/api/publications", handlers.web_api_publications)
        app.router.add_get("/api/publications/latest", handlers.web_api_latest_publication)
        app.router.add_get("/api/score-settings", handlers.web_api_score_settings)
        app.router.add_put("/api/score-settings", handlers.web_api_update_score_settings)
        app.router.add_post("/api/publish-scores", handlers.web_api_publish_scores)
        app.router.add_get("/api/unpublished-changes", handlers.web_api_unpublished_changes)
        app.router.add_get("/api/config", handlers.web_api_config)

        # Add CORS to all routes
        for route in list(app.router.routes()):
            cors.add(route)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured web_port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.web_port

        app_runner = web_runner.AppRunner(self.build_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        log.info("Web server running on http://%s:%d", host, port)
        return app_runner
