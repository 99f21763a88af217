import argparse

import uvicorn

APP = "quietstats.app:app"


def main(argv=None):
    ap = argparse.ArgumentParser(description="Run the quietstats ingest service.")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8123)
    ap.add_argument("--workers", type=int, default=1)
    ap.add_argument("--reload", action="store_true")
    args = ap.parse_args(argv)

    print(f"[serve] ingest on http://{args.host}:{args.port}/ingest")
    uvicorn.run(APP, host=args.host, port=args.port, workers=args.workers, reload=args.reload)


if __name__ == "__main__":
    main()
