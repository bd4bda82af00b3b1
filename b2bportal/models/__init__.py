from b2bportal.models.store import Store
from b2bportal.models.company import CompanyAccount, User
from b2bportal.models.order import B2BOrder, OrderPayment
from b2bportal.models.credit import CreditTransaction
from b2bportal.models.webhook import WebhookDelivery
