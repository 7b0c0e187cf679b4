"""Resolution of requested refresh targets into the targets actually fetched."""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping

from ..core.models import OvirtManager, RefreshTarget, TargetGroup, WholeManager

logger = logging.getLogger(__name__)


def _dedupe(targets: Iterable[RefreshTarget]) -> List[RefreshTarget]:
    """Drop repeated targets, keeping the first appearance of each."""

    return list(OrderedDict.fromkeys(targets))


def _flatten(targets: Iterable[RefreshTarget]) -> Iterable[RefreshTarget]:
    for target in targets:
        if isinstance(target, TargetGroup):
            yield from _flatten(target.targets)
        else:
            yield target


def group_by_manager(targets: Iterable[RefreshTarget]) -> Dict[str, List[RefreshTarget]]:
    """Group requested targets by the manager that owns them."""

    grouped: Dict[str, List[RefreshTarget]] = OrderedDict()
    for target in targets:
        grouped.setdefault(target.manager_id, []).append(target)
    return grouped


class TargetResolver:
    """Collapses and batches refresh targets for a single manager."""

    def resolve(
        self, manager: OvirtManager, targets: Iterable[RefreshTarget]
    ) -> List[RefreshTarget]:
        resolved = _dedupe(targets)

        whole = next((t for t in resolved if isinstance(t, WholeManager)), None)
        if whole is not None:
            if len(resolved) > 1:
                logger.info(
                    "Defaulting to full refresh for manager: [%s], id: [%s] (%d targets superseded).",
                    manager.name,
                    manager.id,
                    len(resolved) - 1,
                )
            resolved = [whole]

        if not manager.graph_refresh:
            return resolved

        manager_targets = [t for t in resolved if isinstance(t, WholeManager)]
        sub_targets = _dedupe(
            _flatten(t for t in resolved if not isinstance(t, WholeManager))
        )
        if sub_targets:
            manager_targets.append(
                TargetGroup(manager_id=manager.id, targets=tuple(sub_targets))
            )
        return manager_targets

    def resolve_all(
        self,
        managers: Mapping[str, OvirtManager],
        targets: Iterable[RefreshTarget],
    ) -> Dict[str, List[RefreshTarget]]:
        """Resolve targets of several managers at once, keyed by manager id."""

        resolved: Dict[str, List[RefreshTarget]] = OrderedDict()
        for manager_id, manager_targets in group_by_manager(targets).items():
            manager = managers.get(manager_id)
            if manager is None:
                logger.warning(
                    "Skipping %d refresh targets for unknown manager id %s",
                    len(manager_targets),
                    manager_id,
                )
                continue
            resolved[manager_id] = self.resolve(manager, manager_targets)
        return resolved


__all__ = ["group_by_manager", "TargetResolver"]
