"""
Binding registry: which collection receives which (site, record type)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
import importlib.util
import logging
import re

from sqlalchemy import MetaData, Table
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BindingError
from core.logging import ErrorLog
from ingestion.loaders.postgres_store import PostgresCollection
from models.base import RecordType
from models.collection import build_collection_table

logger = logging.getLogger(__name__)

# PostgreSQL identifier limit
COLLECTION_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def binding_module_path(directory: Union[str, Path], site: str, record_type: RecordType) -> Path:
    """<directory>/<SITE>/<site>_<suffix>.py, e.g. bindings/AVB/avb_invoice_line.py"""
    return Path(directory) / site / f"{site.lower()}_{record_type.module_suffix}.py"


@dataclass(frozen=True)
class StoreBinding:
    """Destination of one (site, record type) pair, declared by a binding module"""
    site: str
    record_type: RecordType
    collection: str
    table: Table
    module_path: Path
    key_fields: Tuple[str, ...] = field(default_factory=tuple)

    def bind(self, db_session: AsyncSession) -> PostgresCollection:
        """Handle on the collection, valid for the lifetime of the session"""
        return PostgresCollection(db_session, self.table, self.key_fields)


class BindingRegistry:
    """
    Registry mapping (site, record type) to a StoreBinding.

    Populated once by scan(); resolve() is then a dictionary lookup. A pair
    without a usable binding resolves to None and is reported as a warning,
    so sites with only some record types configured still load the rest.

    A binding module defines:
        COLLECTION = "avb_articles"         # required, table name
        KEY_FIELDS = ("CODE",)              # optional, unique document key
    """

    def __init__(
        self,
        directory: Union[str, Path],
        error_log: Optional[ErrorLog] = None,
        metadata: Optional[MetaData] = None
    ):
        self.directory = Path(directory)
        self.error_log = error_log
        self.metadata = metadata if metadata is not None else MetaData()
        self._bindings: Dict[Tuple[str, RecordType], StoreBinding] = {}
        self._unavailable: Dict[Tuple[str, RecordType], str] = {}

    @classmethod
    def scan(
        cls,
        directory: Union[str, Path],
        error_log: Optional[ErrorLog] = None,
        sites: Optional[Iterable[str]] = None
    ) -> "BindingRegistry":
        """
        Load every binding module found under `directory`.

        Args:
            directory: Root holding one sub-directory per site
            error_log: Receives warnings for malformed modules at resolve time
            sites: Restrict the scan to these sites (default: every sub-directory)
        """
        registry = cls(directory, error_log=error_log)

        if not registry.directory.is_dir():
            logger.warning(f"Bindings directory {registry.directory} not found, no collection is bound")
            return registry

        if sites is None:
            sites = sorted(p.name for p in registry.directory.iterdir() if p.is_dir())

        for site in sites:
            for record_type in RecordType:
                module_path = binding_module_path(registry.directory, site, record_type)
                if not module_path.is_file():
                    continue
                try:
                    registry.register(registry._load_binding(site, record_type, module_path))
                except BindingError as e:
                    registry._unavailable[(site, record_type)] = f"{e.message} ({module_path})"
                    logger.debug(f"Binding {site}/{record_type.value} unavailable: {e}")

        logger.info(
            f"Loaded {len(registry)} bindings from {registry.directory} "
            f"({len(registry._unavailable)} unusable)"
        )
        return registry

    def register(self, binding: StoreBinding) -> None:
        """
        Add a binding.

        Raises:
            BindingError: If the pair is already bound
        """
        key = (binding.site, binding.record_type)
        if key in self._bindings:
            raise BindingError(
                "Pair is already bound",
                context={"site": binding.site, "record_type": binding.record_type.value}
            )
        self._bindings[key] = binding

    def resolve(self, site: str, record_type: RecordType) -> Optional[StoreBinding]:
        """
        Binding of a pair, or None when unavailable.

        Unavailability is logged and written to the error log; it never raises.
        """
        binding = self._bindings.get((site, record_type))
        if binding is not None:
            return binding

        reason = self._unavailable.get((site, record_type))
        if reason is None:
            reason = f"no binding module {binding_module_path(self.directory, site, record_type)}"

        message = f"{site}/{record_type.value}: binding unavailable, {reason}"
        logger.warning(message)
        if self.error_log is not None:
            self.error_log.record(message)
        return None

    def unavailable_reason(self, site: str, record_type: RecordType) -> Optional[str]:
        return self._unavailable.get((site, record_type))

    def bindings(self) -> List[StoreBinding]:
        return list(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, key: Tuple[str, RecordType]) -> bool:
        return key in self._bindings

    # ------------------------------------------------------------------
    # Module loading
    # ------------------------------------------------------------------

    def _load_binding(self, site: str, record_type: RecordType, module_path: Path) -> StoreBinding:
        context = {"site": site, "record_type": record_type.value, "module_path": str(module_path)}
        module_name = f"_bindings.{site}.{module_path.stem}"

        try:
            spec = importlib.util.spec_from_file_location(module_name, str(module_path))
            if spec is None or spec.loader is None:
                raise ImportError(f"cannot load {module_path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            raise BindingError("Binding module failed to import", context=context, original_exception=e)

        collection = getattr(module, "COLLECTION", None)
        if not isinstance(collection, str) or not COLLECTION_NAME_PATTERN.match(collection):
            raise BindingError("COLLECTION missing or not a valid table name", context=context)

        key_fields = getattr(module, "KEY_FIELDS", ())
        if isinstance(key_fields, str) or not isinstance(key_fields, (list, tuple)):
            raise BindingError("KEY_FIELDS must be a list or tuple of field names", context=context)
        if not all(isinstance(name, str) and name for name in key_fields):
            raise BindingError("KEY_FIELDS must only hold non-empty field names", context=context)

        if collection in self.metadata.tables:
            raise BindingError(f"Collection {collection} is already bound to another pair", context=context)

        table = build_collection_table(collection, self.metadata, key_fields)
        return StoreBinding(
            site=site,
            record_type=record_type,
            collection=collection,
            table=table,
            module_path=module_path,
            key_fields=tuple(key_fields),
        )
