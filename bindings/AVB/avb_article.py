"""AVB articles"""

COLLECTION = "avb_articles"
