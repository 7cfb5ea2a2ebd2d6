import logging
from decimal import Decimal
from typing import Any, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.exceptions import BusinessRuleViolation, UnexpectedError

logger = logging.getLogger(__name__)

# Guard items enforce uniqueness with conditional writes. They live in the
# same table as the rows they protect, under a reserved key prefix.
EMAIL_GUARD_PREFIX = "EMAIL#"
CATEGORY_NAME_GUARD_PREFIX = "NAME#"

_CONDITION_FAILURES = {"ConditionalCheckFailedException", "TransactionCanceledException"}

_dynamodb = None


def get_resource():
    """Lazily create the DynamoDB resource so tests can install mocks first."""
    global _dynamodb
    if _dynamodb is None:
        kwargs = {"region_name": settings.DYNAMO_REGION}
        if settings.DYNAMO_ENDPOINT_URL:
            kwargs["endpoint_url"] = settings.DYNAMO_ENDPOINT_URL
        _dynamodb = boto3.resource("dynamodb", **kwargs)
    return _dynamodb


def reset_resource():
    global _dynamodb
    _dynamodb = None


def users_table():
    return get_resource().Table(settings.DYNAMO_USERS_TABLE)


def categories_table():
    return get_resource().Table(settings.DYNAMO_CATEGORIES_TABLE)


def transactions_table():
    return get_resource().Table(settings.DYNAMO_TRANSACTIONS_TABLE)


def _client():
    # The resource's client accepts native Python values for every operation
    return get_resource().meta.client


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "Unknown")


def _fail(operation: str, e: ClientError):
    logger.error(f"{operation} failed: {e.response['Error']['Message']}")
    raise UnexpectedError() from e


def email_guard_key(email: str) -> str:
    return f"{EMAIL_GUARD_PREFIX}{email.lower()}"


def category_name_guard_key(name: str) -> str:
    return f"{CATEGORY_NAME_GUARD_PREFIX}{name.strip().lower()}"


# ---------------------------------------------------------------------------
# Table management
# ---------------------------------------------------------------------------

def create_tables():
    """Create the three tables and their indexes if they do not exist yet."""
    client = _client()
    existing = set(client.list_tables().get("TableNames", []))

    if settings.DYNAMO_USERS_TABLE not in existing:
        client.create_table(
            TableName=settings.DYNAMO_USERS_TABLE,
            KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "email", "AttributeType": "S"},
                {"AttributeName": "email_verification_token", "AttributeType": "S"},
                {"AttributeName": "password_reset_token", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                _gsi("email-index", "email"),
                _gsi("verification-token-index", "email_verification_token"),
                _gsi("reset-token-index", "password_reset_token"),
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        logger.info(f"Created table {settings.DYNAMO_USERS_TABLE}")

    if settings.DYNAMO_CATEGORIES_TABLE not in existing:
        client.create_table(
            TableName=settings.DYNAMO_CATEGORIES_TABLE,
            KeySchema=[
                {"AttributeName": "user_id", "KeyType": "HASH"},
                {"AttributeName": "category_id", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "category_id", "AttributeType": "S"},
                {"AttributeName": "type", "AttributeType": "S"},
            ],
            LocalSecondaryIndexes=[_lsi("type-index", "type")],
            BillingMode="PAY_PER_REQUEST",
        )
        logger.info(f"Created table {settings.DYNAMO_CATEGORIES_TABLE}")

    if settings.DYNAMO_TRANSACTIONS_TABLE not in existing:
        client.create_table(
            TableName=settings.DYNAMO_TRANSACTIONS_TABLE,
            KeySchema=[
                {"AttributeName": "user_id", "KeyType": "HASH"},
                {"AttributeName": "transaction_id", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "transaction_id", "AttributeType": "S"},
                {"AttributeName": "date", "AttributeType": "S"},
                {"AttributeName": "type_date", "AttributeType": "S"},
                {"AttributeName": "category_date", "AttributeType": "S"},
            ],
            LocalSecondaryIndexes=[
                _lsi("date-index", "date"),
                _lsi("type-date-index", "type_date"),
                _lsi("category-date-index", "category_date"),
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        logger.info(f"Created table {settings.DYNAMO_TRANSACTIONS_TABLE}")


def _gsi(name: str, attribute: str) -> dict:
    return {
        "IndexName": name,
        "KeySchema": [{"AttributeName": attribute, "KeyType": "HASH"}],
        "Projection": {"ProjectionType": "ALL"},
    }


def _lsi(name: str, attribute: str) -> dict:
    return {
        "IndexName": name,
        "KeySchema": [
            {"AttributeName": "user_id", "KeyType": "HASH"},
            {"AttributeName": attribute, "KeyType": "RANGE"},
        ],
        "Projection": {"ProjectionType": "ALL"},
    }


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def create_user(user_item: dict):
    """
    Insert a new user together with its email guard in one transaction.
    Raises BusinessRuleViolation when the email is already claimed.
    """
    table_name = settings.DYNAMO_USERS_TABLE
    try:
        _client().transact_write_items(
            TransactItems=[
                {
                    "Put": {
                        "TableName": table_name,
                        "Item": {"user_id": email_guard_key(user_item["email"]), "owner_id": user_item["user_id"]},
                        "ConditionExpression": "attribute_not_exists(user_id)",
                    }
                },
                {
                    "Put": {
                        "TableName": table_name,
                        "Item": _convert_for_dynamo({k: v for k, v in user_item.items() if v is not None}),
                        "ConditionExpression": "attribute_not_exists(user_id)",
                    }
                },
            ]
        )
    except ClientError as e:
        if _error_code(e) in _CONDITION_FAILURES:
            raise BusinessRuleViolation("User already exists") from e
        _fail("create_user", e)


def get_user_by_id(user_id: str):
    """Get user by user_id from the Users table."""
    if user_id.startswith(EMAIL_GUARD_PREFIX):
        return None
    try:
        response = users_table().get_item(Key={"user_id": user_id})
        item = response.get("Item")
        return _from_dynamo(item) if item else None
    except ClientError as e:
        _fail("get_user_by_id", e)


def get_user_by_email(email: str):
    """Query the Users table by email through the email GSI."""
    return _get_user_by_index("email-index", "email", email.lower())


def get_user_by_verification_token(token: str):
    return _get_user_by_index("verification-token-index", "email_verification_token", token)


def get_user_by_reset_token(token: str):
    return _get_user_by_index("reset-token-index", "password_reset_token", token)


def _get_user_by_index(index_name: str, attribute: str, value: str):
    if not value:
        return None
    try:
        response = users_table().query(
            IndexName=index_name,
            KeyConditionExpression=Key(attribute).eq(value),
        )
        items = response.get("Items", [])
        return _from_dynamo(items[0]) if items else None
    except ClientError as e:
        _fail(f"query {index_name}", e)


def update_user(user_id: str, updates: Optional[dict] = None, remove: Optional[Iterable[str]] = None):
    """
    SET the given attributes and REMOVE the named ones on an existing user.
    Returns the updated item, or None when the user does not exist.
    """
    kwargs = _update_kwargs(updates or {}, remove or ())
    if not kwargs:
        return get_user_by_id(user_id)
    try:
        response = users_table().update_item(
            Key={"user_id": user_id},
            ConditionExpression="attribute_exists(user_id)",
            ReturnValues="ALL_NEW",
            **kwargs,
        )
        return _from_dynamo(response.get("Attributes"))
    except ClientError as e:
        if _error_code(e) == "ConditionalCheckFailedException":
            return None
        _fail("update_user", e)


def consume_user_token(
    user_id: str,
    token_field: str,
    token_value: str,
    updates: Optional[dict] = None,
    remove: Iterable[str] = (),
):
    """
    Apply the update only while token_field still holds token_value, so a
    token or OTP can be consumed exactly once. Returns the updated item, or
    None when the token was already used or replaced.
    """
    kwargs = _update_kwargs(updates or {}, remove)
    _add_token_condition(kwargs, token_field, token_value)
    try:
        response = users_table().update_item(
            Key={"user_id": user_id},
            ReturnValues="ALL_NEW",
            **kwargs,
        )
        return _from_dynamo(response.get("Attributes"))
    except ClientError as e:
        if _error_code(e) == "ConditionalCheckFailedException":
            return None
        _fail("consume_user_token", e)


def _add_token_condition(kwargs: dict, token_field: str, token_value: str):
    kwargs["ConditionExpression"] = "#tok = :tok"
    kwargs.setdefault("ExpressionAttributeNames", {})["#tok"] = token_field
    kwargs.setdefault("ExpressionAttributeValues", {})[":tok"] = token_value


def change_user_email(
    user_id: str,
    old_email: str,
    new_email: str,
    updates: dict,
    remove: Iterable[str],
    token_field: str,
    token_value: str,
):
    """
    Move the email guard from old_email to new_email and apply the user update,
    all in one transaction, provided the confirming OTP is still pending.

    Raises BusinessRuleViolation if new_email was claimed in the meantime or
    the OTP was already consumed.
    """
    table_name = settings.DYNAMO_USERS_TABLE
    kwargs = _update_kwargs(dict(updates, email=new_email.lower()), remove)
    _add_token_condition(kwargs, token_field, token_value)
    try:
        _client().transact_write_items(
            TransactItems=[
                {
                    "Put": {
                        "TableName": table_name,
                        "Item": {"user_id": email_guard_key(new_email), "owner_id": user_id},
                        "ConditionExpression": "attribute_not_exists(user_id)",
                    }
                },
                {"Delete": {"TableName": table_name, "Key": {"user_id": email_guard_key(old_email)}}},
                {
                    "Update": {
                        "TableName": table_name,
                        "Key": {"user_id": user_id},
                        **kwargs,
                    }
                },
            ]
        )
    except ClientError as e:
        if _error_code(e) not in _CONDITION_FAILURES:
            _fail("change_user_email", e)
        reasons = e.response.get("CancellationReasons") or []
        if len(reasons) > 2 and reasons[2].get("Code") == "ConditionalCheckFailed":
            raise BusinessRuleViolation("Invalid or expired OTP") from e
        raise BusinessRuleViolation("Email is already in use") from e
    return get_user_by_id(user_id)


def delete_user(user_id: str, email: Optional[str]):
    """Remove the user row and its email guard."""
    try:
        with users_table().batch_writer() as batch:
            if email:
                batch.delete_item(Key={"user_id": email_guard_key(email)})
            batch.delete_item(Key={"user_id": user_id})
    except ClientError as e:
        _fail("delete_user", e)


def get_users_pending_deletion() -> List[dict]:
    try:
        items = _scan_all(users_table(), FilterExpression=Attr("deletion_requested_at").exists())
        return [_from_dynamo(item) for item in items]
    except ClientError as e:
        _fail("get_users_pending_deletion", e)


def _update_kwargs(updates: dict, remove: Iterable[str]) -> dict:
    """
    Build UpdateExpression arguments with placeholders for every attribute name.
    """
    set_parts = []
    remove_parts = []
    names = {}
    values = {}

    for idx, (key, value) in enumerate(updates.items()):
        placeholder = f"#f{idx}"
        value_placeholder = f":v{idx}"
        set_parts.append(f"{placeholder} = {value_placeholder}")
        names[placeholder] = key
        values[value_placeholder] = value

    for idx, key in enumerate(remove):
        if key in updates:
            continue
        placeholder = f"#r{idx}"
        remove_parts.append(placeholder)
        names[placeholder] = key

    expression = []
    if set_parts:
        expression.append("SET " + ", ".join(set_parts))
    if remove_parts:
        expression.append("REMOVE " + ", ".join(remove_parts))
    if not expression:
        return {}

    kwargs = {"UpdateExpression": " ".join(expression), "ExpressionAttributeNames": names}
    if values:
        kwargs["ExpressionAttributeValues"] = _convert_for_dynamo(values)
    return kwargs


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def create_categories(category_items: List[dict]):
    """
    Insert categories with their name guards in a single transaction, so
    either all of them are created or none are.
    """
    table_name = settings.DYNAMO_CATEGORIES_TABLE
    transact_items = []
    for item in category_items:
        transact_items.append({
            "Put": {
                "TableName": table_name,
                "Item": {
                    "user_id": item["user_id"],
                    "category_id": category_name_guard_key(item["name"]),
                    "owner_id": item["category_id"],
                },
                "ConditionExpression": "attribute_not_exists(category_id)",
            }
        })
        transact_items.append({
            "Put": {
                "TableName": table_name,
                "Item": _convert_for_dynamo(item),
                "ConditionExpression": "attribute_not_exists(category_id)",
            }
        })
    try:
        _client().transact_write_items(TransactItems=transact_items)
    except ClientError as e:
        if _error_code(e) in _CONDITION_FAILURES:
            raise BusinessRuleViolation("Category with this name already exists") from e
        _fail("create_categories", e)


def create_category(category_item: dict):
    create_categories([category_item])


def get_category(user_id: str, category_id: str):
    if category_id.startswith(CATEGORY_NAME_GUARD_PREFIX):
        return None
    try:
        response = categories_table().get_item(Key={"user_id": user_id, "category_id": category_id})
        item = response.get("Item")
        return _from_dynamo(item) if item else None
    except ClientError as e:
        _fail("get_category", e)


def list_categories(user_id: str, include_inactive: bool = False) -> List[dict]:
    try:
        items = _query_all(categories_table(), KeyConditionExpression=Key("user_id").eq(user_id))
    except ClientError as e:
        _fail("list_categories", e)
    categories = [
        _from_dynamo(item) for item in items
        if not item["category_id"].startswith(CATEGORY_NAME_GUARD_PREFIX)
    ]
    if not include_inactive:
        categories = [c for c in categories if c.get("is_active", False)]
    return categories


def count_categories(user_id: str) -> int:
    """Number of categories the user has ever owned, active or not."""
    return len(list_categories(user_id, include_inactive=True))


def update_category(user_id: str, category: dict, updates: dict):
    """
    Apply partial updates to a category. A rename swaps the name guard in the
    same transaction so the new name stays unique for the owner.
    """
    category_id = category["category_id"]
    new_name = updates.get("name")
    renamed = new_name is not None and category_name_guard_key(new_name) != category_name_guard_key(category["name"])

    if not renamed:
        kwargs = _update_kwargs(updates, ())
        try:
            response = categories_table().update_item(
                Key={"user_id": user_id, "category_id": category_id},
                ConditionExpression="attribute_exists(category_id)",
                ReturnValues="ALL_NEW",
                **kwargs,
            )
            return _from_dynamo(response.get("Attributes"))
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            _fail("update_category", e)

    table_name = settings.DYNAMO_CATEGORIES_TABLE
    try:
        _client().transact_write_items(
            TransactItems=[
                {
                    "Put": {
                        "TableName": table_name,
                        "Item": {
                            "user_id": user_id,
                            "category_id": category_name_guard_key(new_name),
                            "owner_id": category_id,
                        },
                        "ConditionExpression": "attribute_not_exists(category_id)",
                    }
                },
                {
                    "Delete": {
                        "TableName": table_name,
                        "Key": {"user_id": user_id, "category_id": category_name_guard_key(category["name"])},
                    }
                },
                {
                    "Update": {
                        "TableName": table_name,
                        "Key": {"user_id": user_id, "category_id": category_id},
                        "ConditionExpression": "attribute_exists(category_id)",
                        **_update_kwargs(updates, ()),
                    }
                },
            ]
        )
    except ClientError as e:
        if _error_code(e) in _CONDITION_FAILURES:
            raise BusinessRuleViolation("Category with this name already exists") from e
        _fail("update_category", e)
    return get_category(user_id, category_id)


def soft_delete_category(user_id: str, category: dict, updated_at: str):
    """Mark a category inactive and release its name."""
    table_name = settings.DYNAMO_CATEGORIES_TABLE
    try:
        _client().transact_write_items(
            TransactItems=[
                {
                    "Update": {
                        "TableName": table_name,
                        "Key": {"user_id": user_id, "category_id": category["category_id"]},
                        "UpdateExpression": "SET is_active = :inactive, updated_at = :now",
                        "ExpressionAttributeValues": {":inactive": False, ":now": updated_at},
                    }
                },
                {
                    "Delete": {
                        "TableName": table_name,
                        "Key": {"user_id": user_id, "category_id": category_name_guard_key(category["name"])},
                    }
                },
            ]
        )
    except ClientError as e:
        _fail("soft_delete_category", e)


def delete_categories_for_user(user_id: str) -> int:
    """Hard delete every category row and name guard owned by the user."""
    return _delete_partition(categories_table(), user_id, "category_id")


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

def put_transaction(transaction_item: dict):
    """Insert or replace a transaction for a user."""
    try:
        transactions_table().put_item(Item=_convert_for_dynamo(_with_index_keys(transaction_item)))
    except ClientError as e:
        _fail("put_transaction", e)


def get_transaction(user_id: str, transaction_id: str):
    """Fetch a single transaction item."""
    try:
        response = transactions_table().get_item(Key={"user_id": user_id, "transaction_id": transaction_id})
        item = response.get("Item")
        return _from_dynamo(item) if item else None
    except ClientError as e:
        _fail("get_transaction", e)


def update_transaction(user_id: str, transaction_id: str, updates: dict, remove: Iterable[str] = ()):
    """
    Apply partial updates to a transaction. Returns the updated item or None.
    """
    if not updates and not remove:
        return None

    current = get_transaction(user_id, transaction_id)
    if current is None:
        return None

    # Keep the derived index keys in step with type/category/date
    merged = dict(current, **updates)
    index_keys = _with_index_keys(merged)
    updates = dict(updates, type_date=index_keys["type_date"], category_date=index_keys["category_date"])

    try:
        response = transactions_table().update_item(
            Key={"user_id": user_id, "transaction_id": transaction_id},
            ConditionExpression="attribute_exists(transaction_id)",
            ReturnValues="ALL_NEW",
            **_update_kwargs(updates, remove),
        )
        attributes = response.get("Attributes")
        return _from_dynamo(attributes) if attributes else None
    except ClientError as e:
        if _error_code(e) == "ConditionalCheckFailedException":
            return None
        _fail("update_transaction", e)


def delete_transaction(user_id: str, transaction_id: str):
    """Delete a specific transaction item."""
    try:
        response = transactions_table().delete_item(
            Key={"user_id": user_id, "transaction_id": transaction_id},
            ReturnValues="ALL_OLD",
        )
        return "Attributes" in response
    except ClientError as e:
        _fail("delete_transaction", e)


def query_transactions(
    user_id: str,
    start: Optional[str] = None,
    end: Optional[str] = None,
    type: Optional[str] = None,
    category_id: Optional[str] = None,
) -> List[dict]:
    """
    Query a user's transactions in the half-open window [start, end), using
    the most selective local index for the filters given.
    """
    # BETWEEN rejects an inverted range, and such a window holds nothing
    if start and end and start >= end:
        return []

    if category_id:
        index_name, attribute, prefix = "category-date-index", "category_date", f"{category_id}#"
    elif type:
        index_name, attribute, prefix = "type-date-index", "type_date", f"{type}#"
    else:
        index_name, attribute, prefix = "date-index", "date", ""

    condition = Key("user_id").eq(user_id)
    if start or end:
        # "~" sorts after every character used in an ISO timestamp
        low = f"{prefix}{start or ''}"
        high = f"{prefix}{end or '~'}"
        condition = condition & Key(attribute).between(low, high)
    elif prefix:
        condition = condition & Key(attribute).begins_with(prefix)

    try:
        items = _query_all(transactions_table(), IndexName=index_name, KeyConditionExpression=condition)
    except ClientError as e:
        _fail("query_transactions", e)

    results = [_from_dynamo(item) for item in items]
    if end:
        results = [item for item in results if item["date"] < end]
    if category_id and type:
        results = [item for item in results if item["type"] == type]
    return results


def delete_transactions_for_user(user_id: str) -> int:
    return _delete_partition(transactions_table(), user_id, "transaction_id")


def _with_index_keys(item: dict) -> dict:
    item = dict(item)
    item["type_date"] = f"{item['type']}#{item['date']}"
    item["category_date"] = f"{item['category_id']}#{item['date']}"
    return item


# ---------------------------------------------------------------------------
# Reconciliation helpers
# ---------------------------------------------------------------------------

def scan_owner_ids(table) -> set:
    """Distinct user_ids that own at least one row in the table."""
    try:
        items = _scan_all(table, ProjectionExpression="user_id")
    except ClientError as e:
        _fail("scan_owner_ids", e)
    return {item["user_id"] for item in items}


def _delete_partition(table, user_id: str, sort_key: str) -> int:
    try:
        items = _query_all(
            table,
            KeyConditionExpression=Key("user_id").eq(user_id),
            ProjectionExpression="user_id, #sk",
            ExpressionAttributeNames={"#sk": sort_key},
        )
        with table.batch_writer() as batch:
            for item in items:
                batch.delete_item(Key={"user_id": item["user_id"], sort_key: item[sort_key]})
        return len(items)
    except ClientError as e:
        _fail(f"delete partition of {table.name}", e)


def _query_all(table, **kwargs) -> List[dict]:
    items = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _scan_all(table, **kwargs) -> List[dict]:
    items = []
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
