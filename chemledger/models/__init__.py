# chemledger/models/__init__.py
from chemledger.models.compound import Compound
from chemledger.models.entry import Entry
from chemledger.models.enums import EntryType, Scale
from chemledger.models.quantity import Quantity

__all__ = ["Compound", "Entry", "EntryType", "Quantity", "Scale"]
