"""User and transaction persistence on top of DocumentStore."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import ValidationError as ModelValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import DocumentStore
from errors import (
    INVALID_CREDENTIALS,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    transaction_not_found,
)
from schemas import (
    Registration,
    Summary,
    TransactionFields,
    TransactionPatch,
    TransactionView,
    UserRecord,
    UserView,
    normalize_email,
    user_view,
    utcnow,
)
from security import PasswordHasher

logger = logging.getLogger(__name__)

USERS = "users"
TRANSACTIONS = "transactions"


def _parse_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _validation_message(exc: ModelValidationError) -> str:
    """First error as ``field: message``, short enough to return to clients."""
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{location}: {message}" if location else message


class UserRepository:
    def __init__(self, store: DocumentStore, hasher: PasswordHasher):
        self.store = store
        self.hasher = hasher

    @staticmethod
    def declare_indexes(store: DocumentStore) -> None:
        store.register_index(USERS, [("email", 1)], unique=True)

    @property
    def _users(self):
        return self.store.collection(USERS)

    def register(self, email: str, password: str, name: str) -> UserView:
        try:
            registration = Registration(email=email, password=password, name=name)
        except ModelValidationError as exc:
            raise ValidationError(_validation_message(exc))

        if self._users.find_one({"email": registration.email}, {"_id": 1}) is not None:
            raise ConflictError("User with this email already exists")

        try:
            document = self.store.create_document(
                USERS,
                {
                    "email": registration.email,
                    "password": self.hasher.hash(registration.password),
                    "name": registration.name,
                },
            )
        except DuplicateKeyError:
            raise ConflictError("User with this email already exists")

        logger.info("Registered user %s", document["_id"])
        return user_view(document)

    def authenticate(self, email: str, password: str) -> UserView:
        record = self._find_record(email)
        if record is None or not self.hasher.verify(password, record.password):
            logger.warning("Failed login attempt for %s", email)
            raise UnauthorizedError(INVALID_CREDENTIALS)
        return record.to_view()

    def _find_record(self, email: str) -> Optional[UserRecord]:
        if not isinstance(email, str):
            return None
        document = self._users.find_one({"email": normalize_email(email)})
        return UserRecord.from_document(document) if document else None

    def find_by_id(self, user_id: str) -> UserView:
        object_id = _parse_object_id(user_id)
        document = None
        if object_id is not None:
            document = self._users.find_one({"_id": object_id}, {"password": 0})
        if document is None:
            raise NotFoundError("User not found")
        return user_view(document)


class TransactionRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def declare_indexes(store: DocumentStore) -> None:
        store.register_index(TRANSACTIONS, [("type", 1), ("date", -1)])
        store.register_index(TRANSACTIONS, [("category", 1)])

    @property
    def _transactions(self):
        return self.store.collection(TRANSACTIONS)

    def create(self, fields: Dict[str, Any]) -> TransactionView:
        try:
            transaction = TransactionFields.model_validate(fields)
        except ModelValidationError as exc:
            raise ValidationError(_validation_message(exc))
        document = self.store.create_document(TRANSACTIONS, transaction.model_dump())
        return TransactionView.from_document(document)

    def list(self) -> List[TransactionView]:
        documents = self.store.get_documents(TRANSACTIONS, sort=[("date", -1), ("created_at", -1)])
        return [TransactionView.from_document(doc) for doc in documents]

    def update(self, transaction_id: str, partial: Dict[str, Any]) -> TransactionView:
        object_id = _parse_object_id(transaction_id)
        current = self._transactions.find_one({"_id": object_id}) if object_id is not None else None
        if current is None:
            raise NotFoundError(transaction_not_found(transaction_id))

        patch = self._validate_patch(partial)
        merged = {key: current.get(key) for key in TransactionFields.model_fields if key in current}
        merged.update(patch)
        try:
            transaction = TransactionFields.model_validate(merged)
        except ModelValidationError as exc:
            raise ValidationError(_validation_message(exc))

        update = transaction.model_dump()
        update["updated_at"] = utcnow()
        document = self._transactions.find_one_and_update(
            {"_id": object_id},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            # Deleted between read and write.
            raise NotFoundError(transaction_not_found(transaction_id))
        return TransactionView.from_document(document)

    def delete(self, transaction_id: str) -> TransactionView:
        object_id = _parse_object_id(transaction_id)
        document = self._transactions.find_one_and_delete({"_id": object_id}) if object_id is not None else None
        if document is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return TransactionView.from_document(document)

    def delete_all(self, confirm: bool = False) -> int:
        if not confirm:
            raise ValidationError("Deleting all transactions requires confirmation")
        result = self._transactions.delete_many({})
        logger.info("Deleted all transactions (%d)", result.deleted_count)
        return result.deleted_count

    def bulk_update(self, ids: Iterable[Any], patch: Dict[str, Any]) -> int:
        object_ids = []
        for value in ids:
            object_id = _parse_object_id(value)
            if object_id is None:
                raise ValidationError(f"Invalid transaction id: {value}")
            object_ids.append(object_id)

        update = self._validate_patch(patch)
        if not update:
            raise ValidationError("Update must change at least one field")
        if not object_ids:
            return 0
        update["updated_at"] = utcnow()

        result = self._transactions.update_many({"_id": {"$in": object_ids}}, {"$set": update})
        logger.info("Bulk updated %d of %d transactions", result.modified_count, len(object_ids))
        return result.modified_count

    def summary(self) -> Summary:
        pipeline = [{"$group": {"_id": "$type", "total": {"$sum": "$amount"}, "count": {"$sum": 1}}}]
        totals = {"income": 0.0, "expense": 0.0}
        count = 0
        for row in self._transactions.aggregate(pipeline):
            if row["_id"] in totals:
                totals[row["_id"]] = float(row["total"])
            count += row["count"]
        return Summary(
            total_income=totals["income"],
            total_expenses=totals["expense"],
            balance=totals["income"] - totals["expense"],
            count=count,
        )

    @staticmethod
    def _validate_patch(patch: Any) -> Dict[str, Any]:
        if not isinstance(patch, dict):
            raise ValidationError("Update must be an object")
        try:
            return TransactionPatch.model_validate(patch).to_update()
        except ModelValidationError as exc:
            raise ValidationError(_validation_message(exc))
