"""AVB suppliers"""

COLLECTION = "avb_suppliers"
