"""
Shared fixtures: small in-memory POS and recipe tables.

Reference catalog
-----------------
plu 100 -> recipe 10: lettuce (27) 0.5 per unit, plus ingredient 99
plu 200 -> recipe 20: sub-recipe 500 x 2.0; 500 holds lettuce (291) 0.25
plu 300 -> recipe 30: lettuce (27) 1.0 directly AND sub-recipe 600 x 1.0,
           600 holds lettuce (27) 0.5 (the same ingredient by both paths)
plu 400 -> recipe 40: ingredient 99 only
"""

import pandas as pd
import pytest

from ingredient_forecast.services.data_loader import InputTables

LETTUCE_IDS = {27, 291}


def reference_tables():
    """Menu catalog, assignment tables and stores shared by every fixture."""
    return {
        'menu_items': pd.DataFrame({
            'plu': [100, 200, 300, 400],
            'menu_item_id': [1, 2, 3, 4],
            'recipe_id': [10, 20, 30, 40],
        }),
        'recipe_ingredients': pd.DataFrame({
            'recipe_id': [10, 10, 30, 40],
            'ingredient_id': [27, 99, 27, 99],
            'quantity': [0.5, 2.0, 1.0, 1.0],
            'unit_type_id': [1, 1, 1, 1],
        }),
        'recipe_sub_recipes': pd.DataFrame({
            'recipe_id': [20, 30],
            'sub_recipe_id': [500, 600],
            'factor': [2.0, 1.0],
        }),
        'sub_recipe_ingredients': pd.DataFrame({
            'sub_recipe_id': [500, 500, 600],
            'ingredient_id': [291, 99, 27],
            'quantity': [0.25, 3.0, 0.5],
            'unit_type_id': [2, 1, 1],
        }),
        'stores': pd.DataFrame({
            'store_id': [1, 2],
            'display_name': ['Downtown', 'Airport'],
        }),
    }


def build_tables(orders, order_lines, **overrides) -> InputTables:
    data = reference_tables()
    data['orders'] = orders
    data['order_lines'] = order_lines
    data.update(overrides)
    return InputTables.from_dict(data)


@pytest.fixture
def sample_tables():
    """
    Three orders over two days with one line of each recoverable problem:
    a negative quantity, an unknown order and an unknown PLU.
    """
    orders = pd.DataFrame({
        'order_key': ['o1', 'o2', 'o3'],
        'store_id': [1, 2, 1],
        'order_date': pd.to_datetime(['2024-01-01 12:30', '2024-01-01 19:00', '2024-01-02 13:15']),
    })
    order_lines = pd.DataFrame({
        'order_key': ['o1', 'o1', 'o2', 'o3', 'o3', 'missing', 'o1'],
        'plu': [100, 400, 200, 300, 999, 100, 100],
        'quantity': [2, 1, 3, 1, 1, 1, -1],
    })
    return build_tables(orders, order_lines)


@pytest.fixture
def two_store_tables():
    """
    Ten days, 2024-03-01 to 2024-03-10. Store 1 orders plu 100 (direct
    path) every day; store 2 orders plu 200 (sub-recipe path) on three days
    and plu 400 (no lettuce) on the others.
    """
    dates = pd.date_range('2024-03-01', '2024-03-10', freq='D')
    sub_recipe_days = pd.to_datetime(['2024-03-02', '2024-03-05', '2024-03-09'])

    order_rows, line_rows = [], []
    for i, day in enumerate(dates):
        order_rows.append({'order_key': f'a{i}', 'store_id': 1, 'order_date': day + pd.Timedelta(hours=12)})
        line_rows.append({'order_key': f'a{i}', 'plu': 100, 'quantity': 2 + i % 3})

        order_rows.append({'order_key': f'b{i}', 'store_id': 2, 'order_date': day + pd.Timedelta(hours=18)})
        plu = 200 if day in sub_recipe_days else 400
        line_rows.append({'order_key': f'b{i}', 'plu': plu, 'quantity': 4})

    return build_tables(pd.DataFrame(order_rows), pd.DataFrame(line_rows))


@pytest.fixture
def daily_demand():
    """Sparse DailyDemand for two stores over 2024-01-01..2024-01-10."""
    return pd.DataFrame({
        'store_id': [1, 1, 1, 1, 2, 2],
        'date': pd.to_datetime([
            '2024-01-02', '2024-01-03', '2024-01-05', '2024-01-09',
            '2024-01-04', '2024-01-08',
        ]),
        'total_quantity': [3.0, 0.0, 5.5, 2.0, 1.25, 0.0],
    })


@pytest.fixture
def make_tables():
    """Factory: InputTables from orders and order lines plus the shared catalog."""
    return build_tables


@pytest.fixture
def write_tables():
    """Factory: write every table of an InputTables as `<name>.csv` into a directory."""
    def _write(tables: InputTables, directory):
        for name, df in tables.as_dict().items():
            df.to_csv(directory / f"{name}.csv", index=False)
        return directory
    return _write
