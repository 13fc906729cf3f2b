from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pacsvc.config import PacConfig
from pacsvc.direct_list import DirectListStore
from pacsvc.host_classifier import HostClassifier, get_host_classifier
from pacsvc.housekeeping import start_housekeeping
from pacsvc.pac_renderer import PacRenderer
from pacsvc.pac_service import PacService
from pacsvc.site_stat_store import SiteStatStore


logger = logging.getLogger(__name__)


@dataclass
class PacRuntime:
    config: PacConfig
    classifier: HostClassifier
    store: SiteStatStore
    direct_list: DirectListStore
    renderer: PacRenderer
    service: PacService

    def start(self) -> None:
        """Load the direct list synchronously, then start the background workers."""
        if self.config.disable_background:
            self.direct_list.refresh()
            return
        self.direct_list.start(interval_seconds=self.config.refresh_seconds)
        start_housekeeping(retention_days=self.config.retention_days, store=self.store)

    def stop(self) -> None:
        self.direct_list.stop(timeout=5)


def build_runtime(config: PacConfig, *, store: Optional[SiteStatStore] = None) -> PacRuntime:
    """Wire the PAC subsystem together. Raises InitializationError on a bad template."""
    classifier = get_host_classifier()
    if store is None:
        store = SiteStatStore(config.sitestat_db, classifier=classifier)
    store.init_db()

    if config.direct_file:
        n = store.load_user_list(config.direct_file, direct=True)
        logger.info("Loaded %d user direct domains from %s", n, config.direct_file)
    if config.blocked_file:
        n = store.load_user_list(config.blocked_file, direct=False)
        logger.info("Loaded %d user blocked domains from %s", n, config.blocked_file)

    direct_list = DirectListStore(store)
    renderer = PacRenderer(top_level=classifier.top_level, server_id=config.server_id)
    return PacRuntime(
        config=config,
        classifier=classifier,
        store=store,
        direct_list=direct_list,
        renderer=renderer,
        service=PacService(direct_list, renderer),
    )
