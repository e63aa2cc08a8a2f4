# Library Fee Ledger
# Desktop dashboard for registering library students, recording monthly fee
# payments and sending SMS reminders. Data lives in a flat sheet: a local
# .xlsx workbook (openpyxl) or a spreadsheet-over-HTTP service.

import sys

from feeledger.app import main

if __name__ == "__main__":
    sys.exit(main())
