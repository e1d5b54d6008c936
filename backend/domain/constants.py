"""
Domain constants used across services/routers.
"""

# Paystack amounts are integers in kobo (1 NGN = 100 kobo)
KOBO_PER_NAIRA = 100
MIN_CHARGE_KOBO = 100

# Gateway reference prefixes
ORDER_REFERENCE_PREFIX = "order_"
TRANSFER_REFERENCE_PREFIX = "transfer_"
TEST_TRANSFER_PREFIX = "test_transfer_"
TEST_RECIPIENT_CODE = "TEST_RECIPIENT_CODE"

# Webhook
WEBHOOK_SIGNATURE_HEADER = "x-paystack-signature"
CHARGE_SUCCESS_EVENT = "charge.success"

# Catalog
MAX_PRODUCT_IMAGES = 5
LISTING_WINDOW_DAYS = 7
TRENDING_MIN_VIEWS = 50
HOT_MIN_SALES = 10
SHOWCASE_LIMIT = 10
CATEGORY_PAGE_LIMIT = 20

# Seller payouts
ACCOUNT_NUMBER_LENGTH = 10

# Accounts resolved locally while the gateway runs in test mode
TEST_BANK_ACCOUNTS = [
    {"account_number": "0000000000", "bank_code": "044", "account_name": "Test Account"},
    {"account_number": "1111111111", "bank_code": "058", "account_name": "Test Account Two"},
    {"account_number": "2222222222", "bank_code": "232", "account_name": "Test Account Three"},
]
TEST_ACCOUNT_NAME = "TEST ACCOUNT NAME"

MOCK_BANKS = [
    {"code": "044", "name": "Access Bank"},
    {"code": "058", "name": "GTBank"},
    {"code": "232", "name": "Sterling Bank"},
    {"code": "033", "name": "United Bank for Africa"},
    {"code": "215", "name": "Unity Bank"},
    {"code": "035", "name": "Wema Bank"},
    {"code": "057", "name": "Zenith Bank"},
]
