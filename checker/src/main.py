"""
repo-checker - periodically checks the latest hash of a repository branch.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI

from checker.src.config import Settings, load_settings
from checker.src.routes import revision_router
from checker.src.services.repo_checker import RepoChecker, RepoCheckError

logger = logging.getLogger(__name__)

def create_app(checker: RepoChecker) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Serving latest revision of {checker.repo_url} ({checker.branch})")
        yield
        # Shutdown
        logger.info("Shutting down repo-checker")

    app = FastAPI(
        title="repo-checker",
        description="Latest commit of a repository branch",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.checker = checker
    app.include_router(revision_router)
    return app

async def serve(settings: Settings):
    checker = RepoChecker(
        repo_url=settings.repo_url,
        branch=settings.repo_branch,
        work_dir=settings.work_dir,
        interval=settings.interval,
        git_timeout=settings.git_timeout,
    )
    await asyncio.to_thread(checker.clone)

    host, port = settings.listen_host_port()
    server = uvicorn.Server(uvicorn.Config(create_app(checker), host=host, port=port, log_level="warning"))

    refresh = asyncio.create_task(checker.update_latest_revision())
    serving = asyncio.create_task(server.serve())
    done, _ = await asyncio.wait({refresh, serving}, return_when=asyncio.FIRST_COMPLETED)

    if refresh in done:
        # The refresh loop only returns by failing; stop serving stale data
        server.should_exit = True
        await serving
        refresh.result()
    else:
        refresh.cancel()
        await asyncio.gather(refresh, return_exceptions=True)

def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    settings = load_settings(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    try:
        asyncio.run(serve(settings))
    except RepoCheckError as e:
        logger.error(f"repo-checker failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("repo-checker shutting down...")

if __name__ == "__main__":
    main()
