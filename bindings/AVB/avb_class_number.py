"""AVB class numbers"""

COLLECTION = "avb_class_numbers"
