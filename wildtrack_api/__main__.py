import argparse

import uvicorn


def main():
    p = argparse.ArgumentParser(description="Run the WildTrack telemetry API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=3000)
    p.add_argument("--reload", action="store_true")
    args = p.parse_args()
    uvicorn.run("wildtrack_api.main:create_app", factory=True, host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
