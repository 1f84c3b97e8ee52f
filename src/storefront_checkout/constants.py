#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Constants shared by the checkout workflow."""

from .enums import PaymentFamily

JSON_API_MEDIA_TYPE = "application/vnd.api+json"

AUTHORIZATION_HEADER = "Authorization"
CSRF_HEADER = "X-CSRF-Header"
MUTATING_METHODS = frozenset({"POST", "PATCH", "PUT", "DELETE"})

# Endpoints, relative to the API root.
SHOPPING_LISTS_ENDPOINT = "shoppinglists"
SHOPPING_LIST_ITEMS_ENDPOINT = "shoppinglistitems"
CHECKOUTS_ENDPOINT = "checkouts"
CUSTOMER_ADDRESSES_ENDPOINT = "customeraddresses"
COUNTRIES_ENDPOINT = "countries"
REGIONS_ENDPOINT = "regions"

# Resource type names.
CHECKOUTS_TYPE = "checkouts"
CHECKOUT_ADDRESSES_TYPE = "checkoutaddresses"
CUSTOMER_ADDRESSES_TYPE = "customeraddresses"
COUNTRIES_TYPE = "countries"
REGIONS_TYPE = "regions"
SHOPPING_LIST_ITEMS_TYPE = "shoppinglistitems"
PRODUCTS_TYPE = "products"
PRODUCT_UNITS_TYPE = "productunits"
PRODUCT_IMAGES_TYPE = "productimages"
ORDERS_TYPE = "orders"
SHIPPING_METHODS_TYPE = "checkoutavailableshippingmethods"
PAYMENT_METHODS_TYPE = "checkoutavailablepaymentmethods"

# Local ids of the checkout address snapshots sent in `included`.
BILLING_ADDRESS_LOCAL_ID = "bl_addr_id"
SHIPPING_ADDRESS_LOCAL_ID = "sh_addr_id"
DEFAULT_COUNTRY_ID = "US"

# Substrings of a payment method id, checked in order.
PAYMENT_FAMILY_MARKERS = (
    ("payment_term", PaymentFamily.PAYMENT_TERM),
    ("PaymentTerm", PaymentFamily.PAYMENT_TERM),
    ("stripe", PaymentFamily.CARD_GATEWAY),
    ("paypal", PaymentFamily.WALLET),
)
DEFAULT_PAYMENT_FAMILY = PaymentFamily.PAYMENT_TERM

LINE_ITEMS_PAGE_SIZE = 100
LINE_ITEMS_INCLUDE = "product,product.images,product.inventoryStatus,unit"
COUNTRIES_PAGE_SIZE = 250
REGIONS_PAGE_SIZE = 100

SAVE_DEBOUNCE_MS = 500
SNAPSHOT_TTL_HOURS = 24
PRICE_PRECISION = 2
REQUEST_TIMEOUT_SECONDS = 10.0
