from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class ETLStatus(str, enum.Enum):
    """Status of one (site, record type) import"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
    SKIPPED = "skipped"


class RunState(str, enum.Enum):
    """Migration run state"""
    CONNECTING = "connecting"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RecordType(str, enum.Enum):
    """Legacy record types, declared in processing order"""
    ARTICLE = "article"
    CLASS_NUMBER = "class-number"
    SUPPLIER = "supplier"
    CUSTOMER = "customer"
    INVOICE = "invoice"
    INVOICE_LINE = "invoice-line"
    THIRD_PARTY = "third-party"

    @property
    def archive_filename(self) -> str:
        """Conventional archive filename inside a site directory"""
        return ARCHIVE_FILENAMES[self]

    @property
    def module_suffix(self) -> str:
        """Suffix of the binding module name, e.g. 'invoice_line'"""
        return self.value.replace("-", "_")


ARCHIVE_FILENAMES = {
    RecordType.ARTICLE: "article.dbf",
    RecordType.CLASS_NUMBER: "classes.dbf",
    RecordType.SUPPLIER: "fourniss.dbf",
    RecordType.CUSTOMER: "clients.dbf",
    RecordType.INVOICE: "facture.dbf",
    RecordType.INVOICE_LINE: "detail.dbf",
    RecordType.THIRD_PARTY: "tiers.dbf",
}
