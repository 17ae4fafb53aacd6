"""
Site-wide flags toggled from the admin console.

Read once at startup, written back on every change. Single process, last
write wins.
"""
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Union

from logging_config import logger


@dataclass
class SiteFlags:
    waitlist_active: bool = False


class SiteFlagStore:
    """JSON file holding SiteFlags"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.flags = SiteFlags()

    def load(self) -> SiteFlags:
        if not self.path.exists():
            logger.info("No site flags file, using defaults", path=str(self.path))
            self.flags = SiteFlags()
            return self.flags
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable site flags file, using defaults", path=str(self.path), error=str(e))
            self.flags = SiteFlags()
            return self.flags
        self.flags = SiteFlags(waitlist_active=bool(data.get("waitlist_active", False)))
        logger.info("Site flags loaded", **asdict(self.flags))
        return self.flags

    def set_waitlist_active(self, active: bool) -> SiteFlags:
        self.flags = SiteFlags(waitlist_active=bool(active))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(self.flags)), encoding="utf-8")
        logger.info("Waitlist gate toggled", waitlist_active=self.flags.waitlist_active)
        return self.flags
