"""
End-to-end tests of the pipeline and its configuration checks.
"""

import json

import numpy as np
import pandas as pd
import pytest

from ingredient_forecast import cli
from ingredient_forecast.config import PipelineConfig, StoreConfig
from ingredient_forecast.exceptions import ConfigurationError
from ingredient_forecast.pipeline import IngredientDemandPipeline
from ingredient_forecast.services import consumption_resolver

LETTUCE_IDS = {27, 291}
WINDOW = pd.date_range('2024-03-01', '2024-03-10', freq='D')
SUB_RECIPE_DAYS = pd.to_datetime(['2024-03-02', '2024-03-05', '2024-03-09'])


def test_two_store_matrix(two_store_tables):
    pipeline = IngredientDemandPipeline(PipelineConfig(ingredient_ids=LETTUCE_IDS))
    prepared = pipeline.prepare(two_store_tables)
    frame = prepared.matrix.frame

    assert frame.shape == (10, 2)
    assert list(frame.index) == list(WINDOW)
    assert frame[1].notna().all()
    assert list(frame.index[frame[2].notna()]) == list(SUB_RECIPE_DAYS)


def test_two_store_values(two_store_tables):
    prepared = IngredientDemandPipeline(PipelineConfig(ingredient_ids=LETTUCE_IDS)).prepare(two_store_tables)
    frame = prepared.matrix.frame

    # Store 1: quantity (2 + i % 3) x 0.5; store 2: 4 x factor 2.0 x 0.25
    expected = [0.5 * (2 + i % 3) for i in range(10)]
    np.testing.assert_allclose(frame[1].to_numpy(), expected)
    assert frame[2].dropna().tolist() == [2.0, 2.0, 2.0]
    assert [d.stage for d in prepared.diagnostics] == ['resolver', 'aggregator', 'densifier']


def test_run_produces_wide_forecast_table(two_store_tables):
    result = IngredientDemandPipeline(PipelineConfig(ingredient_ids=LETTUCE_IDS)).run(two_store_tables)
    table = result.forecast_table

    assert list(table.columns) == ['date', 'Downtown', 'Airport']
    assert len(table) == 14
    assert table['date'].iloc[0] == pd.Timestamp('2024-03-11')
    assert (table[['Downtown', 'Airport']] >= 0).all().all()
    assert table['Downtown'].dtype.kind == 'i'
    assert set(result.summary['forecasting']['selected_models'].values()) == {'moving_average'}


def test_horizon_comes_from_config(two_store_tables):
    config = PipelineConfig(ingredient_ids=LETTUCE_IDS)
    config.forecast.horizon = 7
    result = IngredientDemandPipeline(config).run(two_store_tables)
    assert len(result.forecast_table) == 7


def test_store_policies_are_applied(two_store_tables):
    config = PipelineConfig(
        ingredient_ids=LETTUCE_IDS,
        stores={1: StoreConfig(1, leading_truncation_days=3)}
    )
    frame = IngredientDemandPipeline(config).prepare(two_store_tables).matrix.frame

    assert frame.loc[:'2024-03-03', 1].isna().all()
    assert frame.loc['2024-03-04':, 1].notna().all()


def test_explicit_window_limits_the_matrix(two_store_tables):
    config = PipelineConfig(ingredient_ids=LETTUCE_IDS, window_start='2024-03-03', window_end='2024-03-08')
    frame = IngredientDemandPipeline(config).prepare(two_store_tables).matrix.frame

    assert list(frame.index) == list(pd.date_range('2024-03-03', '2024-03-08', freq='D'))
    assert frame[2].notna().sum() == 1


@pytest.fixture
def resolver_must_not_run(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("resolver ran despite invalid configuration")
    monkeypatch.setattr(consumption_resolver.ConsumptionResolver, 'resolve', fail)


@pytest.mark.parametrize('kwargs, code', [
    ({'stores': {99: StoreConfig(99)}}, 'UNKNOWN_STORE'),
    ({'ingredient_ids': set()}, 'EMPTY_INGREDIENT_SET'),
    ({'window_start': '2024-03-08', 'window_end': '2024-03-02'}, 'INVALID_DATE_RANGE'),
    ({'window_start': '2024-02-01'}, 'DATE_RANGE_OUT_OF_DATA'),
    ({'window_end': '2024-04-01'}, 'DATE_RANGE_OUT_OF_DATA'),
    ({'stores': {1: StoreConfig(1, leading_truncation_days=-1)}}, 'INVALID_POLICY'),
    ({'overlap_policy': 'sum_everything'}, 'INVALID_POLICY'),
    ({'default_store': {'leading_truncation_days': -3, 'zero_as_missing': True}}, 'INVALID_POLICY'),
    ({'default_store': {'zero_as_misssing': False}}, 'INVALID_POLICY'),
    ({'stores': {1: StoreConfig(1, start_date='2030-01-01')}}, 'DATE_RANGE_OUT_OF_DATA'),
    ({'default_store': {'start_date': '2024-03-11'}}, 'DATE_RANGE_OUT_OF_DATA'),
    ({'window_end': '2024-03-05', 'stores': {2: StoreConfig(2, start_date='2024-03-07')}}, 'DATE_RANGE_OUT_OF_DATA'),
])
def test_configuration_errors_abort_before_any_stage(two_store_tables, resolver_must_not_run, kwargs, code):
    config = PipelineConfig(**{'ingredient_ids': LETTUCE_IDS, **kwargs})

    with pytest.raises(ConfigurationError) as exc_info:
        IngredientDemandPipeline(config).prepare(two_store_tables)
    assert exc_info.value.code == code


def test_invalid_horizon_is_rejected(two_store_tables, resolver_must_not_run):
    config = PipelineConfig(ingredient_ids=LETTUCE_IDS)
    config.forecast.horizon = 0

    with pytest.raises(ConfigurationError) as exc_info:
        IngredientDemandPipeline(config).run(two_store_tables)
    assert exc_info.value.code == 'INVALID_HORIZON'


def test_run_from_directory_exports_outputs(two_store_tables, write_tables, tmp_path):
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    write_tables(two_store_tables, data_dir)

    config = PipelineConfig(
        data_path=data_dir,
        output_path=tmp_path / 'out',
        ingredient_ids=LETTUCE_IDS
    )
    result = IngredientDemandPipeline(config).run_from_directory()

    out = tmp_path / 'out'
    forecast = pd.read_csv(out / 'forecast_lettuce.csv')
    assert list(forecast.columns) == ['date', 'Downtown', 'Airport']
    assert forecast['date'].iloc[0] == '2024-03-11'

    matrix = pd.read_csv(out / 'demand_matrix_lettuce.csv', index_col='date')
    assert len(matrix) == 10
    assert matrix['2'].notna().sum() == 3

    selection = pd.read_csv(out / 'model_selection.csv')
    assert set(selection['store_id']) == {1, 2}

    summary = json.loads((out / 'run_summary.json').read_text(encoding='utf-8'))
    assert [s['stage'] for s in summary['stages']] == ['resolver', 'aggregator', 'densifier']
    assert summary['config']['ingredient_ids'] == [27, 291]
    assert set(result.exported_files) == {
        'forecast_csv', 'demand_matrix_csv', 'model_selection_csv', 'summary_json'
    }


def test_cli_runs_end_to_end(two_store_tables, write_tables, tmp_path):
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    write_tables(two_store_tables, data_dir)

    exit_code = cli.main([
        '--data-dir', str(data_dir),
        '--output-dir', str(tmp_path / 'out'),
        '--ingredient-ids', '27', '291',
        '--horizon', '5',
    ])

    assert exit_code == 0
    assert len(pd.read_csv(tmp_path / 'out' / 'forecast_lettuce.csv')) == 5


def test_cli_reports_configuration_errors(two_store_tables, write_tables, tmp_path):
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    write_tables(two_store_tables, data_dir)
    config_path = tmp_path / 'run.json'
    config_path.write_text(json.dumps({'stores': [{'store_id': 99}]}), encoding='utf-8')

    exit_code = cli.main([
        '--data-dir', str(data_dir),
        '--output-dir', str(tmp_path / 'out'),
        '--config', str(config_path),
    ])
    assert exit_code == 1


def test_cli_reports_missing_data_dir(tmp_path):
    assert cli.main(['--data-dir', str(tmp_path / 'nowhere'), '--output-dir', str(tmp_path / 'out')]) == 1


@pytest.mark.parametrize('content', [
    '{"stores": [{"leading_truncation_days": 2}]}',
    '{"ingredient_ids": [27, 291],',
    '{"forecast": {"candidate_models": ["prophet"]}}',
    '{"default_store": {"zero_as_misssing": false}}',
])
def test_cli_reports_malformed_config(two_store_tables, write_tables, tmp_path, content):
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    write_tables(two_store_tables, data_dir)
    config_path = tmp_path / 'run.json'
    config_path.write_text(content, encoding='utf-8')

    exit_code = cli.main([
        '--data-dir', str(data_dir),
        '--output-dir', str(tmp_path / 'out'),
        '--config', str(config_path),
    ])
    assert exit_code == 1
    assert not (tmp_path / 'out' / 'forecast_lettuce.csv').exists()
