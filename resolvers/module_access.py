"""
Module Access Resolution
========================

Combines the server's per-module timeline access checks with the student's
local completion state. A completed module is always shown as completed,
whatever the access check says.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from client.errors import LmsError
from models.progress_models import Module, ModuleAccess, ModuleAccessView, ModuleStatus

logger = logging.getLogger(__name__)

ERROR_REASON = "Error checking access"


def module_status(module_id: str, access: Optional[ModuleAccess],
                  completed_module_ids: Iterable[str]) -> ModuleStatus:
    if str(module_id) in {str(m) for m in completed_module_ids or []}:
        return ModuleStatus.COMPLETED

    if access is None or not access.has_access:
        if access is not None and access.is_timeline_restricted:
            return ModuleStatus.TIMELINE_LOCKED
        return ModuleStatus.LOCKED

    return ModuleStatus.AVAILABLE


def blocked_click_message(access: Optional[ModuleAccess]) -> Optional[str]:
    """
    Returns the toast text for a blocked click, or None if the module can be
    opened. Both lock kinds block the click; only the message differs.
    """
    if access is not None and access.has_access:
        return None
    if access is not None and access.is_timeline_restricted:
        if access.current_accessible_module_index is None:
            return access.reason or "Module access is restricted due to timeline enforcement."
        return ("Module access is restricted due to timeline enforcement. "
                f"Complete Module {access.current_accessible_module_index} first.")
    return (access.reason if access is not None and access.reason
            else "You cannot access this module yet.")


async def check_module(client, course_id: str, module: Module) -> ModuleAccess:
    try:
        return await client.get_timeline_access(course_id, module.id)
    except LmsError as e:
        logger.warning("Error checking access for module %s: %s", module.id, e.message)
        return ModuleAccess(module_id=module.id, has_access=False, reason=ERROR_REASON,
                            is_timeline_restricted=False)


async def resolve_module_access(client, course_id: str, modules: List[Module],
                                completed_module_ids: Iterable[str]) -> List[ModuleAccessView]:
    """Checks every module in parallel and returns the views in course order."""
    if not modules:
        return []
    completed = [str(m) for m in completed_module_ids or []]
    ordered = sorted(modules, key=lambda m: m.order)
    results = await asyncio.gather(*(check_module(client, course_id, m) for m in ordered))
    return [
        ModuleAccessView(module=module, access=access,
                         status=module_status(module.id, access, completed))
        for module, access in zip(ordered, results)
    ]


def current_accessible(views: List[ModuleAccessView]) -> Optional[ModuleAccess]:
    """Timeline info taken from the first result that carries it."""
    return next((v.access for v in views if v.access.current_accessible_module), None)
