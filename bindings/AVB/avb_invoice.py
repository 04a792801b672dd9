"""AVB invoices"""

COLLECTION = "avb_invoices"
