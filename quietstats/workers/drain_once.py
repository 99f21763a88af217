from pathlib import Path
from typing import Optional

import redis

from ..config import Settings, load_settings
from .events_writer import decode, write_batch


def drain(r: redis.Redis, queue: str, outdir: Path) -> int:
    """Pop everything currently queued into one parquet file. Returns the row count."""
    batch = []
    while True:
        raw = r.lpop(queue)
        if raw is None:
            break
        rec = decode(raw)
        if rec is not None:
            batch.append(rec)

    if not batch:
        print("[drain] queue empty, nothing to write.")
        return 0

    path = write_batch(batch, outdir)
    print(f"[drain] wrote {len(batch)} rows → {path}")
    return len(batch)


def main(settings: Optional[Settings] = None, r: Optional[redis.Redis] = None) -> int:
    settings = settings or load_settings()
    r = r or redis.Redis.from_url(settings.redis_url, decode_responses=False)
    return drain(r, settings.queue, Path(settings.parquet_dir))


if __name__ == "__main__":
    main()
