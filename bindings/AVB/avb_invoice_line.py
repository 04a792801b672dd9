"""AVB invoice lines"""

COLLECTION = "avb_invoice_lines"
