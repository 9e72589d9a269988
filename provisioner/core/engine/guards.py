"""
Guard evaluation — "is this step's work already done?"

Guards are answered only through the ExistenceCheck interface, so every
step asks the same questions the same way. Read-only.
"""

from __future__ import annotations

import logging

from provisioner.adapters.base import ExistenceCheck
from provisioner.core.engine.environment import ProvisionEnvironment
from provisioner.core.models.manifest import GuardSpec

logger = logging.getLogger(__name__)


def evaluate_guard(
    guard: GuardSpec,
    checks: ExistenceCheck,
    env: ProvisionEnvironment,
) -> bool:
    """Evaluate a guard against the system.

    Args:
        guard: The guard to evaluate.
        checks: Existence queries.
        env: Provisioning environment used to expand arguments.

    Returns:
        True if the guard is satisfied (the step can be skipped).

    Raises:
        GuardCheckError: If an underlying query errored.
    """
    if guard.file_exists is not None:
        return checks.file_exists(env.expand_path(guard.file_exists))

    if guard.command_exists is not None:
        return checks.command_exists(
            env.expand(guard.command_exists),
            search_path=env.search_path,
        )

    if guard.group_member is not None:
        user = env.expand(guard.group_member.user)
        group = env.expand(guard.group_member.group)
        return checks.is_group_member(user, group)

    if guard.all_of is not None:
        return all(evaluate_guard(g, checks, env) for g in guard.all_of)

    if guard.any_of is not None:
        return any(evaluate_guard(g, checks, env) for g in guard.any_of)

    logger.warning("Empty guard, treating as not satisfied")
    return False
