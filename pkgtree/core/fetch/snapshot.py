"""相邻 shrinkwrap 文件读取"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class FileSnapshotSource:
    """从磁盘读取快照文件，读不到一律返回 None"""

    def read(self, path: str) -> bytes | None:
        try:
            return Path(path).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug("读取快照失败，按无快照处理: %s (%s)", path, e)
            return None
