from storefront_pay.models.tenant import Tenant
from storefront_pay.models.user import User
from storefront_pay.models.order import Order
