"""
Drain the anonymized event queue into parquet.

Records arrive on the Redis list as AnonymizedEvent JSON (see sinks.RedisQueueSink).
A file is written every BATCH_SIZE records or FLUSH_SECONDS, whichever first.
"""
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import redis

from ..config import Settings, load_settings

# ---------- Flush policy ----------
BATCH_SIZE = 100          # write every 100 records
FLUSH_SECONDS = 10        # or every 10s, whichever first

COLUMNS = [
    "received_at", "site_id", "kind", "url", "path", "referrer",
    "traffic_type", "traffic_source", "screen_width", "screen_height", "language",
    "page_token", "visitor_hash", "device", "browser", "os",
    "name", "category", "value",
]


def decode(raw: bytes) -> Optional[Dict]:
    try:
        rec = json.loads(raw)
    except ValueError as e:
        print(f"[writer] JSON decode error: {e!r}")
        return None
    if not isinstance(rec, dict):
        print("[writer] skipping non-object record")
        return None
    return rec


def to_frame(batch: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(batch).reindex(columns=COLUMNS)
    df["received_at"] = pd.to_datetime(df["received_at"], utc=True)
    # value is a number or a string; parquet wants one type per column
    df["value"] = df["value"].map(lambda v: None if v is None or (isinstance(v, float) and pd.isna(v)) else str(v))
    return df


def write_batch(batch: List[Dict], outdir: Path, prefix: str = "events") -> Optional[Path]:
    if not batch:
        return None
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    path = outdir / f"{prefix}_{stamp}.parquet"
    to_frame(batch).to_parquet(path, engine="pyarrow", index=False)
    return path


def run(settings: Optional[Settings] = None, r: Optional[redis.Redis] = None):
    settings = settings or load_settings()
    r = r or redis.Redis.from_url(settings.redis_url, decode_responses=False)
    outdir = Path(settings.parquet_dir)
    print(f"[writer] watching Redis list '{settings.queue}' → {outdir}")
    buf: List[Dict] = []
    last = time.time()

    while True:
        # blocking pop with timeout so we can time-flush
        item = r.blpop(settings.queue, timeout=1)
        if item:
            _, raw = item
            rec = decode(raw)
            if rec is not None:
                buf.append(rec)

        if buf and (len(buf) >= BATCH_SIZE or (time.time() - last) >= FLUSH_SECONDS):
            path = write_batch(buf, outdir)
            print(f"[writer] wrote {len(buf)} → {path}")
            buf.clear()
            last = time.time()


if __name__ == "__main__":
    run()
