"""AVB third parties"""

COLLECTION = "avb_third_parties"
