from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from .. import schemas


def eggs_in_sale(sale) -> int:
    return int(sale.dozen_count or 0) * 12 + int(sale.individual_count or 0)


def compute_sales_summary(customers: Iterable, sales: Iterable) -> schemas.SalesSummary:
    customers = list(customers)
    sales = list(sales)

    eggs_by_customer: dict[int, int] = defaultdict(int)
    for s in sales:
        if s.customer_id is not None:
            eggs_by_customer[s.customer_id] += eggs_in_sale(s)

    top_customer = None
    if eggs_by_customer:
        top_id = max(eggs_by_customer, key=eggs_by_customer.get)
        name_by_id = {c.id: c.name for c in customers}
        top_customer = name_by_id.get(top_id)

    return schemas.SalesSummary(
        customer_count=len(customers),
        total_sales=len(sales),
        total_revenue=round(sum(float(s.total_amount or 0) for s in sales), 2),
        total_eggs_sold=sum(eggs_in_sale(s) for s in sales if (s.total_amount or 0) > 0),
        free_eggs_given=sum(eggs_in_sale(s) for s in sales if (s.total_amount or 0) == 0),
        top_customer=top_customer,
    )
