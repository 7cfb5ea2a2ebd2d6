"""
Account deletion.

DynamoDB transactions are capped at 100 items, so an account with its
transactions and categories cannot be removed in one atomic write. Deletion
runs as a saga instead:

1. tombstone the user (``is_active = false`` and ``deletion_requested_at``),
   which immediately stops the account from authenticating;
2. delete every transaction owned by the user;
3. delete every category and category name guard;
4. delete the user row and its email guard.

If the process dies between steps, ``reconcile()`` (run periodically by the
scheduler) finishes tombstoned deletions and removes rows whose owner no
longer exists.
"""
import logging
from typing import Dict, Optional

from app.core.exceptions import UnexpectedError
from app.db import dynamo
from app.utils.dates import to_iso, utcnow

logger = logging.getLogger(__name__)


def delete_account(user: dict) -> Dict[str, int]:
    user_id = user["user_id"]
    dynamo.update_user(user_id, {"is_active": False, "deletion_requested_at": to_iso(utcnow())})
    logger.info(f"Account deletion started for user {user_id}")
    return purge_user(user_id, user.get("email"))


def purge_user(user_id: str, email: Optional[str]) -> Dict[str, int]:
    """Delete children first, then the parent row. Safe to repeat."""
    removed_transactions = dynamo.delete_transactions_for_user(user_id)
    removed_categories = dynamo.delete_categories_for_user(user_id)
    dynamo.delete_user(user_id, email)
    logger.info(
        f"Purged user {user_id}: {removed_transactions} transactions, "
        f"{removed_categories} category rows"
    )
    return {"transactions": removed_transactions, "categories": removed_categories}


def reconcile() -> Dict[str, int]:
    """
    Finish interrupted deletions and remove orphaned category/transaction rows.
    """
    completed = 0
    failed = 0
    for user in dynamo.get_users_pending_deletion():
        try:
            purge_user(user["user_id"], user.get("email"))
            completed += 1
        except UnexpectedError:
            # Left tombstoned; the next sweep retries it
            logger.error(f"Could not finish deletion of user {user['user_id']}")
            failed += 1

    owners = dynamo.scan_owner_ids(dynamo.categories_table()) | dynamo.scan_owner_ids(dynamo.transactions_table())
    orphaned = [owner for owner in owners if dynamo.get_user_by_id(owner) is None]
    for owner in orphaned:
        logger.warning(f"Removing rows orphaned by missing user {owner}")
        dynamo.delete_transactions_for_user(owner)
        dynamo.delete_categories_for_user(owner)

    return {"completed_deletions": completed, "failed_deletions": failed, "orphaned_owners": len(orphaned)}
