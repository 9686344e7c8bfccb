# branches.py
from models import db, Branch, ALL_BRANCHES
import schemas


def in_scope(branch_id, scope):
    """The one scoping rule every list view goes through.

    scope None or "all" is the master view. Records tagged "all" (staff
    users) or None (banners) show up under every scope.
    """
    if scope is None or scope == ALL_BRANCHES:
        return True
    if branch_id is None or branch_id == ALL_BRANCHES:
        return True
    return branch_id == scope


def filter_scope(records, scope):
    return [r for r in records if in_scope(r.branch_id, scope)]


def normalize_scope(value):
    """Request/session value -> scope argument (None for the master view)."""
    if value is None:
        return None
    value = str(value).strip()
    if not value or value == ALL_BRANCHES:
        return None
    return value


def list_branches():
    rows = Branch.query.order_by(Branch.name).all()
    return [schemas.Branch.model_validate(b) for b in rows]


def open_branches():
    return [b for b in list_branches() if b.is_open]


def get_branch(branch_id):
    if not branch_id:
        return None
    row = db.session.get(Branch, branch_id)
    return schemas.Branch.model_validate(row) if row else None


def default_admin_scope(branches):
    """Admin views start on the first branch, never on "all"."""
    return branches[0].id if branches else None
