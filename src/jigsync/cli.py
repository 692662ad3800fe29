import asyncio
import logging

import typer
import uvicorn

from jigsync import __version__
from jigsync.auth import JWTAuthProvider
from jigsync.config import Settings, get_settings

app = typer.Typer(help="Collaborative jigsaw puzzle server.")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind address (JIGSYNC_HOST)."),
    port: int | None = typer.Option(None, help="Bind port (JIGSYNC_PORT)."),
    database_url: str | None = typer.Option(
        None, help="SQLAlchemy async URL (JIGSYNC_DATABASE_URL)."
    ),
    redis_url: str | None = typer.Option(
        None, help="Redis URL for multi-process fan-out (JIGSYNC_REDIS_URL)."
    ),
    log_level: str | None = typer.Option(None, help="Logging level (JIGSYNC_LOG_LEVEL)."),
) -> None:
    """Run the REST + Socket.IO server."""
    overrides = {
        "host": host,
        "port": port,
        "database_url": database_url,
        "redis_url": redis_url,
        "log_level": log_level,
    }
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    _configure_logging(settings.log_level)

    from jigsync.app import create_socket_app

    typer.echo(f"jigsync {__version__} listening on http://{settings.host}:{settings.port}")
    uvicorn.run(
        create_socket_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def token(
    user_id: str = typer.Argument(..., help="User id placed in the 'sub' claim."),
    email: str | None = typer.Option(None, help="Email shown to other room members."),
) -> None:
    """Mint a development bearer token signed with JIGSYNC_AUTH_SECRET."""
    settings = get_settings()
    provider = JWTAuthProvider(
        settings.auth_secret, settings.token_ttl_seconds
    )
    typer.echo(provider.issue_token(user_id, email))


@app.command("init-db")
def init_db() -> None:
    """Create all tables in JIGSYNC_DATABASE_URL."""
    from jigsync.database import create_engine_for_url, init_database

    settings = get_settings()

    async def _run() -> None:
        engine = create_engine_for_url(settings.database_url)
        try:
            await init_database(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    typer.echo(f"✓ Tables created in {settings.database_url}")


@app.command()
def version() -> None:
    typer.echo(__version__)


if __name__ == "__main__":
    app()
