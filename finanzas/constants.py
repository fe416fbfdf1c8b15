# finanzas/constants.py

# Postings that move money between the user's own accounts. They change
# balances but never count as business income or expense.
TRANSFER_MARKER = "Transferencia"
LOAN_PAYMENT_MARKER = "Pago de préstamo"
DEBT_PAYMENT_THIRD_PARTY = "Pago de deuda"
LOAN_DISBURSEMENT_THIRD_PARTY = "Préstamo"

UNCATEGORIZED_LABEL = "Sin categoría"

TREND_MONTHS = 6

LIABILITY_ACCOUNT_TYPES = ("loan", "credit")

DEFAULT_CATEGORIES = [
    {"name": "Suministros", "color": "#1976D2", "type": "expense"},
    {"name": "Transporte", "color": "#388E3C", "type": "expense"},
    {"name": "Servicios", "color": "#F57C00", "type": "expense"},
    {"name": "Marketing", "color": "#D32F2F", "type": "expense"},
    {"name": "Alimentación", "color": "#7B1FA2", "type": "expense"},
    {"name": "Ventas", "color": "#388E3C", "type": "income"},
    {"name": "Consultoría", "color": "#1976D2", "type": "income"},
]

DEMO_ADMIN = {
    "username": "admin",
    "email": "admin@empresa.com",
    "password": "demo123",
    "full_name": "Admin Usuario",
    "role": "admin",
}

DEMO_ACCOUNTS = [
    {
        "name": "Cuenta Corriente Principal",
        "type": "checking",
        "balance": "87450.30",
        "bank_name": "Banco Nacional",
        "account_number": "****1234",
    },
    {
        "name": "Cuenta de Ahorros",
        "type": "savings",
        "balance": "25680.75",
        "bank_name": "Banco Regional",
        "account_number": "****5678",
    },
]
