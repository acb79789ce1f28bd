"""
Run the progress API.

Usage:
    python -m server [--host 0.0.0.0] [--port 8000] [--reload]
"""

import argparse
import logging

import uvicorn


def main(argv=None):
    parser = argparse.ArgumentParser(description='Sakura progress API')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=8000)
    parser.add_argument('--reload', action='store_true', help='Reload on code changes')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    print(f"  Backend: http://{args.host}:{args.port}/docs")
    uvicorn.run("server.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
