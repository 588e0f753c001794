"""
Ready-made permission records for common positions.

Used by the seed script and offered to admin UIs via GET /permissions/presets.
"""
from taskdesk.features.permissions.schema import PositionPermissions


NO_ACCESS = PositionPermissions()

TEAM_MEMBER = PositionPermissions.model_validate({
    "project": {"create": True, "delete": "own", "edit": "own", "view": "all", "assignUsers": True},
    "task": {"create": "any_project", "delete": "own", "edit": "own", "createSubtask": "own"},
    "user": {"invite": True, "edit": False, "viewDetails": "all"},
    "department": {"manage": False, "editHierarchy": False},
})

TEAM_LEAD = PositionPermissions.model_validate({
    "project": {"create": True, "delete": "own", "edit": "department", "view": "department", "assignUsers": True},
    "task": {"create": "any_project", "delete": "department", "edit": "department", "createSubtask": "assigned"},
    "user": {"invite": True, "edit": "subordinate", "viewDetails": "department"},
    "department": {"manage": False, "editHierarchy": False},
})

ADMINISTRATOR = PositionPermissions.model_validate({
    "project": {"create": True, "delete": "all", "edit": "all", "view": "all", "assignUsers": True},
    "task": {"create": "any_project", "delete": "all", "edit": "all", "createSubtask": "assigned"},
    "user": {"invite": True, "edit": "all", "viewDetails": "all"},
    "department": {"manage": True, "editHierarchy": True},
})

PRESETS: dict[str, PositionPermissions] = {
    "no_access": NO_ACCESS,
    "team_member": TEAM_MEMBER,
    "team_lead": TEAM_LEAD,
    "administrator": ADMINISTRATOR,
}
