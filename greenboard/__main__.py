import argparse

import uvicorn

from .config import get_settings


def main(argv=None):
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="greenboard", description="Cost & carbon dashboard API")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)
    uvicorn.run("greenboard.app:app", host=args.host, port=args.port, reload=args.reload,
                log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
