# usage_tracker/store.py
"""
Per-day JSON files.

One file per day key (``<data_dir>/<YYYY-MM-DD>.json``) holding the
entity -> counters object, pretty-printed. Reads never raise: a missing,
unreadable or corrupt file is an empty day. Writes go to a temp file in the
same directory and are renamed over the target, so a crash mid-write leaves
the previous version intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from usage_tracker.models import DayBucket, EntityCounters

log = logging.getLogger("usage_tracker.store")


class StatsStore:
    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def ensure_dir(self) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def load(self, key: str) -> DayBucket:
        path = self.path_for(key)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            log.info('store_miss day="%s" starting fresh', key)
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.error('store_read_error day="%s" path="%s" err="%s"', key, path, e)
            return {}

        if not isinstance(raw, dict):
            log.error('store_read_error day="%s" path="%s" err="top level is not an object"', key, path)
            return {}

        bucket: DayBucket = {}
        for entity_id, record in raw.items():
            if not isinstance(record, dict):
                log.warning('store_skip_entity day="%s" entity="%s"', key, entity_id)
                continue
            bucket[entity_id] = EntityCounters.from_dict(record)
        log.info('store_load day="%s" entities=%d', key, len(bucket))
        return bucket

    def save(self, key: str, data: dict[str, dict[str, int]]) -> Path:
        """
        Write one day's serialized bucket (entity -> wire dict).

        Raises OSError on failure; the previous file, if any, is left untouched.
        """
        self.ensure_dir()
        path = self.path_for(key)
        payload = json.dumps(data, ensure_ascii=False, indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        return path
