"""Flat CSV rows for a product's units."""
import csv
import io

CSV_COLUMNS = [
    'product_name',
    'unit_price',
    'unit_code',
    'status',
    'manufacture_date',
    'expiry_date',
    'sold_customer_name',
    'sold_customer_phone',
]


def unit_csv_rows(product, units):
    """One dict per unit, keyed by CSV_COLUMNS; blanks for missing values."""
    for unit in units:
        price = unit.price if unit.price is not None else product.sale_price
        yield {
            'product_name': product.name,
            'unit_price': str(price) if price is not None else '',
            'unit_code': unit.unit_code,
            'status': unit.status.value,
            'manufacture_date': unit.manufacture_date.isoformat() if unit.manufacture_date else '',
            'expiry_date': unit.expiry_date.isoformat() if unit.expiry_date else '',
            'sold_customer_name': unit.customer_name or '',
            'sold_customer_phone': unit.customer_phone or '',
        }


def write_units_csv(product, units) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    writer.writerows(unit_csv_rows(product, units))
    return buffer.getvalue()
