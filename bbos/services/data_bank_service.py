"""
Reference data store: data banks and their entries
"""
from typing import Dict, List, Any, Optional, Set, Union
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from bbos.models.data_bank import DataBank, DataBankEntry
from bbos.core.config import settings
from bbos.core.exceptions import ValidationError, DuplicateKeyError, NotFoundError
from bbos.utils.reference_keys import generate_key, split_bulk_text
from bbos.utils.serialization import iso
import logging

logger = logging.getLogger(__name__)

ENTRY_ORDERINGS = ("key", "value")
BULK_DUPLICATE_WARNING = "Some entries already exist and were skipped"
ENTRY_VALUE_CLASH = "An option with this value already exists"


class DataBankService:
    """Service for reference data sets and entries"""

    def __init__(self, db: Session):
        self.db = db
        self.key_max_length = settings.REFERENCE_KEY_MAX_LENGTH

    # Sets

    def create_set(
        self,
        name: str,
        description: Optional[str] = None,
        department_id: Optional[int] = None,
        created_by: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Create a reference data set

        Raises:
            ValidationError: empty name
            DuplicateKeyError: an active set already has this name
        """
        try:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Data bank name cannot be empty")
            if self._find_active_set_by_name(name):
                raise DuplicateKeyError(f"Data bank '{name}' already exists")

            data_bank = DataBank(
                name=name,
                description=description,
                department_id=department_id,
                created_by=created_by,
            )
            self.db.add(data_bank)
            self.db.commit()
            self.db.refresh(data_bank)

            logger.info(f"Data bank created: {data_bank.id} - {name}")
            return self._set_to_dict(data_bank)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating data bank: {str(e)}", exc_info=True)
            raise

    def list_sets(self) -> List[Dict[str, Any]]:
        """Active sets, newest first, with their active entry counts"""
        data_banks = (
            self.db.query(DataBank)
            .filter(DataBank.is_active.is_(True))
            .order_by(DataBank.created_at.desc(), DataBank.id.desc())
            .all()
        )
        return [self._set_to_dict(d, with_count=True) for d in data_banks]

    def get_set(self, set_id: int) -> Dict[str, Any]:
        return self._set_to_dict(self._get_active_set(set_id), with_count=True)

    def get_set_by_name(self, name: str) -> Dict[str, Any]:
        data_bank = self._find_active_set_by_name(name)
        if not data_bank:
            raise NotFoundError(f"Data bank '{name}' not found")
        return self._set_to_dict(data_bank, with_count=True)

    def resolve_set_id(self, id_or_name: Union[int, str]) -> int:
        """Accept a numeric id or a set name, as the entries endpoint does"""
        text = str(id_or_name)
        if text.isdigit():
            return self._get_active_set(int(text)).id
        data_bank = self._find_active_set_by_name(text)
        if not data_bank:
            raise NotFoundError(f"Data bank '{text}' not found")
        return data_bank.id

    def update_set(self, set_id: int, **changes) -> Dict[str, Any]:
        try:
            data_bank = self._get_active_set(set_id)

            if changes.get("name") is not None:
                name = changes["name"].strip()
                if not name:
                    raise ValidationError("Data bank name cannot be empty")
                clash = self._find_active_set_by_name(name)
                if clash and clash.id != data_bank.id:
                    raise DuplicateKeyError(f"Data bank '{name}' already exists")
                data_bank.name = name
            if "description" in changes:
                data_bank.description = changes["description"]
            if "department_id" in changes:
                data_bank.department_id = changes["department_id"]

            self.db.commit()
            self.db.refresh(data_bank)
            logger.info(f"Data bank updated: {set_id}")
            return self._set_to_dict(data_bank, with_count=True)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating data bank {set_id}: {str(e)}", exc_info=True)
            raise

    def deactivate_set(self, set_id: int) -> None:
        """Soft delete; forms referencing the set by name lose their options"""
        try:
            data_bank = self._get_active_set(set_id)
            data_bank.is_active = False
            self.db.commit()
            logger.info(f"Data bank deactivated: {set_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deactivating data bank {set_id}: {str(e)}", exc_info=True)
            raise

    # Entries

    def list_entries(self, set_id: int, order_by: str = "key") -> List[Dict[str, Any]]:
        if order_by not in ENTRY_ORDERINGS:
            raise ValidationError(f"Entries can be ordered by: {', '.join(ENTRY_ORDERINGS)}")
        self._get_active_set(set_id)
        column = DataBankEntry.key if order_by == "key" else DataBankEntry.value
        entries = (
            self.db.query(DataBankEntry)
            .filter(DataBankEntry.data_bank_id == set_id, DataBankEntry.is_active.is_(True))
            .order_by(column, DataBankEntry.id)
            .all()
        )
        return [self._entry_to_dict(e) for e in entries]

    def add_entry(
        self,
        set_id: int,
        value: str,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Add one entry; the key defaults to generate_key(value)

        Re-adding a key whose entry was deactivated brings that entry back
        with the new value.
        """
        try:
            self._get_active_set(set_id)
            value = (value or "").strip()
            if not value:
                raise ValidationError("Entry value cannot be empty")
            key = self._entry_key(value, key)

            existing = self._find_entry_by_key(set_id, key)
            if existing and existing.is_active:
                raise DuplicateKeyError(f"Entry with key '{key}' already exists")

            if existing:
                existing.value = value
                existing.metadata_json = metadata
                existing.is_active = True
                entry = existing
            else:
                entry = DataBankEntry(
                    data_bank_id=set_id,
                    key=key,
                    value=value,
                    metadata_json=metadata,
                    created_by=created_by,
                )
                self.db.add(entry)

            self.db.commit()
            self.db.refresh(entry)
            logger.info(f"Data bank entry added: {set_id}/{key}")
            return self._entry_to_dict(entry)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(f"Entry with key '{key}' already exists")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error adding entry to data bank {set_id}: {str(e)}", exc_info=True)
            raise

    def bulk_add_entries(self, set_id: int, raw_text: str, created_by: Optional[int] = None) -> Dict[str, Any]:
        """
        Add many entries from comma- or newline-separated text in one commit

        Values whose key is already live (or repeats inside the batch) are
        skipped and reported through a single warning instead of failing
        the batch.

        Returns:
            {"entries": [...added], "skipped": [values], "warning": str | None}
        """
        try:
            self._get_active_set(set_id)
            values = split_bulk_text(raw_text)
            if not values:
                raise ValidationError("No entries found. Separate values with commas or new lines")

            existing = {
                e.key: e
                for e in self.db.query(DataBankEntry).filter(DataBankEntry.data_bank_id == set_id).all()
            }
            batch_keys: Set[str] = set()
            touched: List[DataBankEntry] = []
            skipped: List[str] = []

            for value in values:
                key = generate_key(value, self.key_max_length)
                current = existing.get(key)
                if not key or key in batch_keys or (current is not None and current.is_active):
                    skipped.append(value)
                    continue
                batch_keys.add(key)

                if current is not None:
                    current.value = value
                    current.is_active = True
                    touched.append(current)
                else:
                    entry = DataBankEntry(data_bank_id=set_id, key=key, value=value, created_by=created_by)
                    self.db.add(entry)
                    touched.append(entry)

            self.db.commit()
            for entry in touched:
                self.db.refresh(entry)

            warning = BULK_DUPLICATE_WARNING if skipped else None
            logger.info(f"Bulk add to data bank {set_id}: {len(touched)} added, {len(skipped)} skipped")
            return {
                "entries": [self._entry_to_dict(e) for e in touched],
                "skipped": skipped,
                "warning": warning,
            }

        except IntegrityError:
            # A concurrent writer took one of the keys; nothing from this batch was stored
            self.db.rollback()
            raise DuplicateKeyError(BULK_DUPLICATE_WARNING)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error bulk adding to data bank {set_id}: {str(e)}", exc_info=True)
            raise

    def update_entry(
        self,
        entry_id: int,
        value: Optional[str] = None,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        set_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Changing the value regenerates the key unless one is supplied"""
        try:
            entry = self._get_active_entry(entry_id, set_id)

            new_key = entry.key
            if value is not None:
                value = value.strip()
                if not value:
                    raise ValidationError("Entry value cannot be empty")
                new_key = self._entry_key(value, key)
                entry.value = value
            elif key is not None:
                new_key = self._entry_key(entry.value, key)

            if new_key != entry.key:
                clash = self._find_entry_by_key(entry.data_bank_id, new_key)
                if clash and clash.id != entry.id:
                    raise DuplicateKeyError(ENTRY_VALUE_CLASH)
                entry.key = new_key
            if metadata is not None:
                entry.metadata_json = metadata

            self.db.commit()
            self.db.refresh(entry)
            logger.info(f"Data bank entry updated: {entry_id}")
            return self._entry_to_dict(entry)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(ENTRY_VALUE_CLASH)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating data bank entry {entry_id}: {str(e)}", exc_info=True)
            raise

    def deactivate_entry(self, entry_id: int, set_id: Optional[int] = None) -> None:
        try:
            entry = self._get_active_entry(entry_id, set_id)
            entry.is_active = False
            self.db.commit()
            logger.info(f"Data bank entry deactivated: {entry_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deactivating data bank entry {entry_id}: {str(e)}", exc_info=True)
            raise

    # Lookups used by form rendering and submission validation

    def resolve_options(self, name: str) -> List[Dict[str, str]]:
        """Options for a select field, ordered by value; [] when the set is missing or inactive"""
        data_bank = self._find_active_set_by_name(name) if name else None
        if not data_bank:
            return []
        entries = (
            self.db.query(DataBankEntry)
            .filter(DataBankEntry.data_bank_id == data_bank.id, DataBankEntry.is_active.is_(True))
            .order_by(DataBankEntry.value, DataBankEntry.id)
            .all()
        )
        return [{"key": e.key, "value": e.value} for e in entries]

    def option_values(self, name: str) -> Optional[Set[str]]:
        """Accepted select values (keys and display values), or None when the set cannot be resolved"""
        data_bank = self._find_active_set_by_name(name) if name else None
        if not data_bank:
            return None
        allowed: Set[str] = set()
        for option in self.resolve_options(name):
            allowed.add(option["key"])
            allowed.add(option["value"])
        return allowed

    def _entry_key(self, value: str, key: Optional[str]) -> str:
        key = (key or "").strip() or generate_key(value, self.key_max_length)
        if not key:
            raise ValidationError(f"Could not derive a key from '{value}'; use letters or digits")
        if len(key) > self.key_max_length:
            raise ValidationError(f"Entry key cannot exceed {self.key_max_length} characters")
        return key

    def _find_active_set_by_name(self, name: str) -> Optional[DataBank]:
        return (
            self.db.query(DataBank)
            .filter(DataBank.name == name, DataBank.is_active.is_(True))
            .first()
        )

    def _find_entry_by_key(self, set_id: int, key: str) -> Optional[DataBankEntry]:
        return (
            self.db.query(DataBankEntry)
            .filter(DataBankEntry.data_bank_id == set_id, DataBankEntry.key == key)
            .first()
        )

    def _get_active_set(self, set_id: int) -> DataBank:
        data_bank = (
            self.db.query(DataBank)
            .filter(DataBank.id == set_id, DataBank.is_active.is_(True))
            .first()
        )
        if not data_bank:
            raise NotFoundError("Data bank not found")
        return data_bank

    def _get_active_entry(self, entry_id: int, set_id: Optional[int] = None) -> DataBankEntry:
        query = self.db.query(DataBankEntry).filter(
            DataBankEntry.id == entry_id,
            DataBankEntry.is_active.is_(True)
        )
        if set_id is not None:
            query = query.filter(DataBankEntry.data_bank_id == set_id)
        entry = query.first()
        if not entry:
            raise NotFoundError("Data bank entry not found")
        return entry

    def _set_to_dict(self, data_bank: DataBank, with_count: bool = False) -> Dict[str, Any]:
        result = {
            "id": data_bank.id,
            "name": data_bank.name,
            "description": data_bank.description,
            "department_id": data_bank.department_id,
            "created_by": data_bank.created_by,
            "is_active": data_bank.is_active,
            "created_at": iso(data_bank.created_at),
            "updated_at": iso(data_bank.updated_at),
        }
        if with_count:
            result["entry_count"] = (
                self.db.query(DataBankEntry)
                .filter(DataBankEntry.data_bank_id == data_bank.id, DataBankEntry.is_active.is_(True))
                .count()
            )
        return result

    def _entry_to_dict(self, entry: DataBankEntry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "data_bank_id": entry.data_bank_id,
            "key": entry.key,
            "value": entry.value,
            "metadata": entry.metadata_json,
            "created_by": entry.created_by,
            "is_active": entry.is_active,
            "created_at": iso(entry.created_at),
            "updated_at": iso(entry.updated_at),
        }
