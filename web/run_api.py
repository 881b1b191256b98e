"""Start the league ledger API with uvicorn.

Host, port and log level come from config (.env). Set API_RELOAD=true while
developing to restart on code changes. Works from a source checkout as
`python web/run_api.py` without installing the package.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import uvicorn

import config


def main() -> None:
    uvicorn.run(
        "web.api.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        log_level=config.LOG_LEVEL.lower(),
        reload=config.API_RELOAD,
    )


if __name__ == "__main__":
    main()
