from .catalog import Product, Warehouse, StockItem, StockMovement, ExchangeRate
from .crm import User, Lead, Account, Contact, Opportunity
from .documents import Quotation, QuotationLine, Invoice, InvoiceLine, SalesOrder, SalesOrderLine
from .payments import Payment, PaymentAllocation, CreditNote, CreditNoteApplication, SalesCommission
from .ecommerce import Customer, EcommerceOrder, EcommerceOrderItem, AbandonedCart
from .system import SystemSetting, Activity, Notification, OutboxEvent

__all__ = [
    'Product', 'Warehouse', 'StockItem', 'StockMovement', 'ExchangeRate',
    'User', 'Lead', 'Account', 'Contact', 'Opportunity',
    'Quotation', 'QuotationLine', 'Invoice', 'InvoiceLine', 'SalesOrder', 'SalesOrderLine',
    'Payment', 'PaymentAllocation', 'CreditNote', 'CreditNoteApplication', 'SalesCommission',
    'Customer', 'EcommerceOrder', 'EcommerceOrderItem', 'AbandonedCart',
    'SystemSetting', 'Activity', 'Notification', 'OutboxEvent',
]
