"""AVB customers"""

COLLECTION = "avb_customers"
