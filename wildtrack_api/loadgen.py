import argparse
import random
import threading
import time
import zlib
from datetime import datetime, timezone

import requests

from .models import format_timestamp

SPECIES = ["Gray Wolf", "Mountain Lion", "Elk", "Bear"]


def collar_reading(device_id, rng, lat=53.9169, lon=-122.7494):
    """One synthetic collar fix around ``lat``/``lon``."""
    return {
        "deviceId": device_id,
        "timestamp": format_timestamp(datetime.now(timezone.utc)),
        "location": {
            "latitude": round(lat + rng.uniform(-0.05, 0.05), 6),
            "longitude": round(lon + rng.uniform(-0.05, 0.05), 6),
            "accuracy": round(rng.uniform(1.0, 10.0), 1),
        },
        "sensors": {
            "temperature": round(rng.uniform(-10.0, 30.0), 2),
            "humidity": round(rng.uniform(20.0, 90.0), 1),
        },
        "wildlife": {
            "species": SPECIES[zlib.crc32(device_id.encode("utf-8")) % len(SPECIES)],
            "individualId": f"individual-{device_id}",
            "activity": rng.choice(["active", "resting", "feeding", "migrating"]),
            "health": "healthy",
        },
        "metadata": {"battery": round(rng.uniform(10, 100)), "signal": round(rng.uniform(40, 100))},
    }


def one_device(device_id, base_url, rps, batch_size=1, seed=None):
    rng = random.Random(seed)
    interval = 1.0 / rps
    while True:
        if batch_size > 1:
            readings = [collar_reading(device_id, rng) for _ in range(batch_size)]
            for r in readings:
                del r["deviceId"]
            url, payload = f"{base_url}/telemetry/batch", {"deviceId": device_id, "batch": readings}
        else:
            url, payload = f"{base_url}/telemetry", collar_reading(device_id, rng)
        try:
            requests.post(url, json=payload, timeout=2)
        except requests.RequestException as e:
            print(f"{device_id}: {e}")
        time.sleep(interval)


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--devices", type=int, default=10)
    p.add_argument("--rps", type=float, default=1.0, help="per-device requests/sec")
    p.add_argument("--batch-size", type=int, default=1, help="readings per request; >1 uses the batch endpoint")
    p.add_argument("--base-url", default="http://localhost:3000/api/v1")
    args = p.parse_args()

    print(f"Starting {args.devices} devices at {args.rps} rps to {args.base_url}")
    threads = []
    for i in range(args.devices):
        t = threading.Thread(
            target=one_device,
            args=(f"collar-{i+1}", args.base_url, args.rps, args.batch_size, i),
            daemon=True,
        )
        t.start()
        threads.append(t)
    for t in threads:
        t.join()


if __name__ == "__main__":
    main()
