"""
Hierarchy Service - Franchise / sub-account tree management.

Handles:
- Attach, detach and transfer of sub-accounts
- Root-to-leaf path lookup
- Per-node user statistics and franchise rollups
- Sub-account creation and bulk attach

The tree depth is capped at MAX_HIERARCHY_DEPTH. ``path`` and the
statistics rollup are generic bounded walks: they stop when no further
parent/child exists and raise InvariantViolationError if the cap is
exceeded or a node repeats, so the cap holds regardless of the callers.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from rbac.roles import Role
from security.api_errors import InvariantViolationError, NotFoundError

from ..models import Account, AccountType, User
from .batch import BatchResult, run_batch

logger = logging.getLogger(__name__)

# franchise -> sub-account
MAX_HIERARCHY_DEPTH = 2


class HierarchyService:
    """Service for tenant hierarchy operations."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # =========================================================================
    # WALKS
    # =========================================================================

    def _get_account(self, account_id: str) -> Account:
        account = self.db.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account not found", resource="account", resource_id=account_id)
        return account

    def path(self, account_id: str) -> List[Account]:
        """
        Ordered root-to-leaf ancestor chain ending at ``account_id``.

        Raises:
            NotFoundError: Account absent.
            InvariantViolationError: Depth cap exceeded, cycle, or dangling parent.
        """
        current = self._get_account(account_id)
        chain = [current]
        visited = {current.account_id}

        while current.parent_id is not None:
            if len(chain) >= MAX_HIERARCHY_DEPTH:
                raise InvariantViolationError(
                    "Hierarchy depth exceeded", account_id=account_id, max_depth=MAX_HIERARCHY_DEPTH
                )
            if current.parent_id in visited:
                raise InvariantViolationError("Hierarchy cycle detected", account_id=account_id)

            parent = self.db.get(Account, current.parent_id)
            if parent is None:
                raise InvariantViolationError(
                    "Parent account is missing", account_id=current.account_id, parent_id=current.parent_id
                )
            visited.add(parent.account_id)
            chain.append(parent)
            current = parent

        chain.reverse()
        return chain

    def _walk_down(self, root: Account) -> List[Tuple[Account, int]]:
        """
        Every node below (and including) ``root`` with its depth, root first.

        Each node is visited exactly once.
        """
        nodes = [(root, 1)]
        visited = {root.account_id}
        frontier = [root]
        depth = 1

        while frontier:
            children = (
                self.db.query(Account)
                .filter(Account.parent_id.in_([n.account_id for n in frontier]))
                .order_by(Account.name)
                .all()
            )
            if not children:
                break
            if depth >= MAX_HIERARCHY_DEPTH:
                raise InvariantViolationError(
                    "Hierarchy depth exceeded", account_id=root.account_id, max_depth=MAX_HIERARCHY_DEPTH
                )
            depth += 1
            frontier = []
            for child in children:
                if child.account_id in visited:
                    raise InvariantViolationError("Hierarchy cycle detected", account_id=child.account_id)
                visited.add(child.account_id)
                nodes.append((child, depth))
                frontier.append(child)

        return nodes

    def _user_counts(self, account_ids: Iterable[str]) -> Dict[str, Dict[str, int]]:
        """user/admin/member counts per account, computed by filtering users on account_id."""
        account_ids = list(account_ids)
        counts = {
            account_id: {"user_count": 0, "admin_count": 0, "member_count": 0}
            for account_id in account_ids
        }
        if not account_ids:
            return counts

        rows = (
            self.db.query(User.account_id, User.role, func.count(User.user_id))
            .filter(User.account_id.in_(account_ids))
            .group_by(User.account_id, User.role)
            .all()
        )
        for account_id, role, count in rows:
            bucket = counts[account_id]
            bucket["user_count"] += count
            if role == Role.TENANT_ADMIN.value:
                bucket["admin_count"] += count
            elif role == Role.TENANT_MEMBER.value:
                bucket["member_count"] += count
        return counts

    def _sub_account_count(self, franchise_id: str) -> int:
        return (
            self.db.query(func.count(Account.account_id))
            .filter(Account.parent_id == franchise_id)
            .scalar()
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_hierarchy(self, franchise_id: str) -> Dict[str, Any]:
        """
        Franchise node plus its direct sub-accounts, each with user counts.

        Totals are the franchise's own counts plus the sum over
        sub-accounts; every node is counted once.
        """
        franchise = self._get_account(franchise_id)
        if not franchise.is_franchise:
            raise InvariantViolationError("Account is not a franchise", account_id=franchise_id)

        nodes = self._walk_down(franchise)
        counts = self._user_counts(node.account_id for node, _ in nodes)

        def node_dict(account: Account) -> Dict[str, Any]:
            data = account.to_dict()
            data.update(counts[account.account_id])
            return data

        sub_accounts = [node_dict(node) for node, depth in nodes if depth == 2]
        totals = {"accounts": len(nodes), "sub_accounts": len(sub_accounts)}
        for key in ("user_count", "admin_count", "member_count"):
            totals[key] = sum(c[key] for c in counts.values())

        return {
            "franchise": node_dict(franchise),
            "sub_accounts": sub_accounts,
            "totals": totals,
        }

    def list_sub_accounts(self, franchise_id: str) -> List[Account]:
        self._get_account(franchise_id)
        return (
            self.db.query(Account)
            .filter(Account.parent_id == franchise_id)
            .order_by(Account.name)
            .all()
        )

    def list_available_accounts(self) -> List[Account]:
        """Parentless individual accounts, i.e. candidates for attach()."""
        return (
            self.db.query(Account)
            .filter(Account.type == AccountType.INDIVIDUAL.value, Account.parent_id.is_(None))
            .order_by(Account.name)
            .all()
        )

    def list_franchises(self) -> List[Dict[str, Any]]:
        """Every franchise with sub-account and user rollups."""
        franchises = (
            self.db.query(Account)
            .filter(Account.type == AccountType.FRANCHISE.value)
            .order_by(Account.name)
            .all()
        )
        result = []
        for franchise in franchises:
            nodes = self._walk_down(franchise)
            counts = self._user_counts(node.account_id for node, _ in nodes)
            data = franchise.to_dict()
            data["sub_account_count"] = len(nodes) - 1
            data["direct_user_count"] = counts[franchise.account_id]["user_count"]
            data["total_user_count"] = sum(c["user_count"] for c in counts.values())
            result.append(data)
        return result

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def _check_parent_target(self, child: Account, target: Account) -> None:
        """Validation shared by attach and transfer. Never mutates."""
        if child.type == AccountType.FRANCHISE.value:
            raise InvariantViolationError(
                "A franchise cannot become a sub-account", account_id=child.account_id
            )
        if target.type != AccountType.FRANCHISE.value:
            raise InvariantViolationError(
                "Target account is not a franchise", account_id=target.account_id
            )
        if target.account_id == child.account_id:
            raise InvariantViolationError("An account cannot be its own parent", account_id=child.account_id)

        # The new parent must be a root so the child ends up within the cap
        if len(self.path(target.account_id)) + 1 > MAX_HIERARCHY_DEPTH:
            raise InvariantViolationError(
                "Hierarchy depth exceeded", account_id=target.account_id, max_depth=MAX_HIERARCHY_DEPTH
            )

        if target.max_sub_accounts is not None and self._sub_account_count(target.account_id) >= target.max_sub_accounts:
            raise InvariantViolationError(
                "Franchise has reached its sub-account limit",
                account_id=target.account_id,
                limit=target.max_sub_accounts,
            )

    def attach(self, child_id: str, franchise_id: str) -> Account:
        """
        Convert a parentless individual account into a sub-account.

        Raises:
            InvariantViolationError: child is a franchise, child already has a
                parent, or target is not a franchise.
        """
        child = self._get_account(child_id)
        target = self._get_account(franchise_id)

        if child.parent_id is not None:
            raise InvariantViolationError(
                "Account already belongs to a franchise", account_id=child_id, parent_id=child.parent_id
            )
        self._check_parent_target(child, target)

        child.parent_id = target.account_id
        self.db.flush()

        logger.info(f"[HIERARCHY] Attached | child={child_id} | franchise={franchise_id}")
        return child

    def detach(self, child_id: str) -> Account:
        """Clear the parent link; the account becomes a standalone individual."""
        child = self._get_account(child_id)
        if child.parent_id is None:
            raise InvariantViolationError("Account is not a sub-account", account_id=child_id)

        previous = child.parent_id
        child.parent_id = None
        self.db.flush()

        logger.info(f"[HIERARCHY] Detached | child={child_id} | from={previous}")
        return child

    def transfer(self, child_id: str, new_franchise_id: str) -> Account:
        """
        Re-parent a sub-account in one step.

        Validated like attach() against the new parent. Transferring to the
        current parent is a no-op; a parentless child is simply attached.
        """
        child = self._get_account(child_id)
        target = self._get_account(new_franchise_id)

        if child.parent_id == target.account_id:
            return child

        self._check_parent_target(child, target)

        previous = child.parent_id
        child.parent_id = target.account_id
        self.db.flush()

        logger.info(
            f"[HIERARCHY] Transferred | child={child_id} | from={previous} | to={new_franchise_id}"
        )
        return child

    def bulk_attach(self, child_ids: Iterable[str], franchise_id: str) -> BatchResult:
        """Attach each child independently; one bad child never aborts the rest."""
        result = run_batch(child_ids, lambda child_id: self.attach(child_id, franchise_id))
        logger.info(
            f"[HIERARCHY] Bulk attach | franchise={franchise_id} | "
            f"succeeded={len(result.succeeded)} | failed={len(result.failed)}"
        )
        return result

    def create_sub_account(self, franchise_id: str, created_by: Optional[str] = None, **fields):
        """
        Create an individual account directly under a franchise.

        The account gets the sub-account trial length, an AccountOverride
        seeded from its plan, and an invited tenant admin.
        """
        from .account_service import AccountService

        franchise = self._get_account(franchise_id)
        if not franchise.is_franchise:
            raise InvariantViolationError("Account is not a franchise", account_id=franchise_id)

        return AccountService(self.db, self.settings).create_account(
            account_type=AccountType.INDIVIDUAL.value,
            parent_id=franchise_id,
            trial_days=self.settings.sub_account_trial_days,
            seed_override=True,
            created_by=created_by,
            **fields,
        )
