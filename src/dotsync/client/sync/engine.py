"""Reconciliation engine: classify mappings and plan filesystem actions.

The engine is a pure function of its inputs. It never touches the
filesystem; snapshots are taken by the caller.

Classification (per mapping, first match wins):

    | Condition                                        | State         | Action                  |
    |--------------------------------------------------|---------------|-------------------------|
    | key matches an ignore pattern                    | -             | no-op                   |
    | either side unreadable                           | -             | no-op (reported failed) |
    | local link into the repo, repo copy missing      | missing-both  | delete-local            |
    | local missing, remote missing                    | missing-both  | no-op                   |
    | local missing, remote present                    | remote-only   | materialize-from-remote |
    | local present, remote missing                    | local-only    | materialize-to-remote   |
    | both present, same checksum                      | in-sync       | no-op                   |
    | differ, local == last known                      | remote-newer  | materialize-from-remote |
    | differ, remote == last known                     | local-newer   | materialize-to-remote   |
    | differ, neither matches (or no last known)       | conflict      | report-conflict         |

A materialize-from-remote that would overwrite an existing local file with
different content is wrapped as backup-then-overwrite.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from dotsync.client.sync.ignore import IgnorePatterns
from dotsync.client.sync.types import (
    Action,
    FileMapping,
    FileState,
    LinkMode,
    PlannedAction,
    ProfileModel,
    ReconciliationPlan,
    SideState,
    Snapshot,
)

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Produces a ReconciliationPlan from a profile and two snapshots."""

    def reconcile(
        self,
        profile: ProfileModel,
        local: Snapshot,
        remote: Snapshot,
        last_known: Mapping[str, str],
    ) -> ReconciliationPlan:
        """Classify every mapping of the profile.

        Args:
            profile: Active profile.
            local: Local side state per mapping key.
            remote: Repository side state per mapping key.
            last_known: Checksum recorded at the last successful sync per key.

        Returns:
            One planned action per mapping, in declaration order.
        """
        ignore = IgnorePatterns(profile.ignore_patterns)
        actions = []
        for mapping in profile.mappings:
            planned = self._plan_mapping(
                mapping,
                profile.link_mode,
                ignore,
                local.get(mapping.key, SideState.missing()),
                remote.get(mapping.key, SideState.missing()),
                last_known.get(mapping.key),
            )
            logger.debug(
                "Planned %s for %s (%s)",
                planned.action.value,
                mapping.key,
                planned.state.value if planned.state else planned.reason,
            )
            actions.append(planned)
        return ReconciliationPlan(profile=profile.name, actions=tuple(actions))

    def _plan_mapping(
        self,
        mapping: FileMapping,
        link_mode: LinkMode,
        ignore: IgnorePatterns,
        local: SideState,
        remote: SideState,
        last_checksum: str | None,
    ) -> PlannedAction:
        def plan(
            action: Action,
            state: FileState | None,
            reason: str = "",
            error: str | None = None,
        ) -> PlannedAction:
            return PlannedAction(
                mapping=mapping,
                action=action,
                state=state,
                link_mode=link_mode,
                reason=reason,
                error=error,
            )

        if ignore.matches(mapping.key) or ignore.matches(mapping.local_path.name):
            return plan(Action.NO_OP, None, "ignored")

        if local.error or remote.error:
            return plan(Action.NO_OP, None, "unreadable", error=local.error or remote.error)

        if local.linked_to_repo and not remote.exists:
            return plan(Action.DELETE_LOCAL, FileState.MISSING_BOTH, "stale link")

        if not local.exists and not remote.exists:
            return plan(Action.NO_OP, FileState.MISSING_BOTH, "nothing to do")

        if not local.exists:
            return plan(Action.MATERIALIZE_FROM_REMOTE, FileState.REMOTE_ONLY)

        if not remote.exists:
            return plan(Action.MATERIALIZE_TO_REMOTE, FileState.LOCAL_ONLY)

        if local.checksum == remote.checksum:
            # Identical content; fix up the local form if it does not match the link mode
            if link_mode == LinkMode.SYMLINK and not local.linked_to_repo:
                return plan(Action.MATERIALIZE_FROM_REMOTE, FileState.IN_SYNC, "replace with link")
            if link_mode == LinkMode.COPY and local.linked_to_repo:
                return plan(Action.MATERIALIZE_FROM_REMOTE, FileState.IN_SYNC, "replace link with copy")
            return plan(Action.NO_OP, FileState.IN_SYNC, "in sync")

        local_changed = local.checksum != last_checksum
        remote_changed = remote.checksum != last_checksum

        if local_changed and remote_changed:
            return plan(
                Action.REPORT_CONFLICT,
                FileState.CONFLICT,
                "both sides changed since last sync",
            )
        if remote_changed:
            # Local content is about to be replaced
            return PlannedAction(
                mapping=mapping,
                action=Action.BACKUP_THEN_OVERWRITE,
                state=FileState.REMOTE_NEWER,
                wrapped=Action.MATERIALIZE_FROM_REMOTE,
                link_mode=link_mode,
            )
        return plan(Action.MATERIALIZE_TO_REMOTE, FileState.LOCAL_NEWER)


def reconcile(
    profile: ProfileModel,
    local: Snapshot,
    remote: Snapshot,
    last_known: Mapping[str, str],
) -> ReconciliationPlan:
    """Quick reconciliation with a default engine."""
    return ReconciliationEngine().reconcile(profile, local, remote, last_known)
