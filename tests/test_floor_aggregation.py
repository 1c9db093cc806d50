import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from floor_aggregation import (
    UNKNOWN_BUILDING,
    aggregate_manpower,
    aggregate_production,
    aggregate_quality,
    base_target_per_hour,
    build_entity_aggregates,
    build_floor_compare,
    build_floor_summary,
    header_base_target,
    summarize_factory,
)
from line_ranking import InvalidInputError


HEADERS = [
    {
        'id': 'h1',
        'line': 'Line-1',
        'assigned_building': 'A-2',
        'total_manpower': 40,
        'manpower_present': 38,
        'manpower_absent': 2,
        'working_hour': 10,
        'plan_efficiency_percent': 60,
        'smv': 12,
        'target_full_day': 1200,
    },
    {
        # No SMV: target falls back to the full-day figure, efficiency is not tracked.
        'id': 'h2',
        'line': 'Line-2',
        'assigned_building': 'A-2',
        'total_manpower': 30,
        'manpower_present': 30,
        'manpower_absent': 0,
        'working_hour': 8,
        'plan_efficiency_percent': 0,
        'smv': 0,
        'target_full_day': 800,
    },
    {
        'id': 'h3',
        'line': 'Line-3',
        'assigned_building': 'B-2',
        'total_manpower': 20,
        'manpower_present': 18,
        'manpower_absent': 2,
        'working_hour': 10,
        'plan_efficiency_percent': 50,
        'smv': 10,
        'target_full_day': 0,
    },
]

PRODUCTIONS = [
    {'header_id': 'h1', 'hour': 1, 'achieved_qty': 100},
    {'header_id': 'h1', 'hour': 2, 'achieved_qty': 120},
    {'headerId': 'h2', 'hour': 1, 'achievedQty': 90},
    {'header_id': 'h3', 'hour': 1, 'achieved_qty': 50},
    {'header_id': 'orphan', 'hour': 1, 'achieved_qty': 999},
]

INSPECTIONS = [
    {'line': 'Line-1', 'building': 'A-2', 'hour_index': 1, 'inspected_qty': 100, 'passed_qty': 95,
     'defective_pcs': 5, 'total_defects': 7},
    {'line': 'Line-1', 'building': 'A-2', 'hour_index': 2, 'inspected_qty': 100, 'passed_qty': 97,
     'defective_pcs': 3, 'total_defects': 4},
    {'line': 'Line-4', 'building': 'B-2', 'hourIndex': 1, 'inspectedQty': 50, 'passedQty': 50,
     'defectivePcs': 0, 'totalDefects': 0},
]


def test_base_target_prefers_capacity():
    assert base_target_per_hour(HEADERS[0]) == pytest.approx(114)
    assert header_base_target(HEADERS[0]) == 1140


def test_base_target_falls_back_to_full_day():
    assert base_target_per_hour(HEADERS[1]) == pytest.approx(100)
    assert header_base_target(HEADERS[1]) == 800
    assert base_target_per_hour({}) == 0
    assert header_base_target({'target_full_day': 500}) == 0


def test_base_target_rounds_half_up():
    header = {'manpower_present': 1, 'smv': 12, 'plan_efficiency_percent': 50, 'working_hour': 1}
    assert base_target_per_hour(header) == pytest.approx(2.5)
    assert header_base_target(header) == 3


def test_line_production_uses_minutes_based_efficiency():
    production = aggregate_production(HEADERS, PRODUCTIONS, 'line')

    line1 = production.loc['Line-1']
    assert line1['target_qty'] == 1140
    assert line1['achieved_qty'] == 220
    assert line1['variance_qty'] == -920
    assert line1['avg_eff_percent'] == pytest.approx(2640 / 4560 * 100)
    assert line1['current_hour'] == 2
    assert line1['current_hour_efficiency'] == pytest.approx(1440 / 2280 * 100)

    line2 = production.loc['Line-2']
    assert line2['target_qty'] == 800
    assert line2['achieved_qty'] == 90
    assert line2['avg_eff_percent'] == 0
    assert line2['current_hour_efficiency'] == 0

    assert production.loc['Line-3', 'avg_eff_percent'] == pytest.approx(500 / 1080 * 100)


def test_orphan_production_rows_are_skipped(caplog):
    with caplog.at_level(logging.DEBUG, logger='floor_aggregation'):
        production = aggregate_production(HEADERS, PRODUCTIONS, 'line')
    assert production['achieved_qty'].sum() == 360
    assert 'Skipped 1 production rows' in caplog.text


def test_numeric_header_ids_match_string_references():
    headers = [{'id': 7, 'line': 'L7', 'manpower_present': 10, 'smv': 6, 'working_hour': 1}]
    production = aggregate_production(headers, [{'header_id': '7', 'hour': 1, 'achieved_qty': 40}])
    assert production.loc['L7', 'achieved_qty'] == 40
    assert production.loc['L7', 'avg_eff_percent'] == pytest.approx(40 * 6 / 600 * 100)


def test_quality_rates_per_line_and_building():
    quality = aggregate_quality(INSPECTIONS, 'line')
    line1 = quality.loc['Line-1']
    assert line1['total_inspected'] == 200
    assert line1['total_passed'] == 192
    assert line1['rft_percent'] == pytest.approx(96)
    assert line1['defect_rate_percent'] == pytest.approx(4)
    assert line1['dhu_percent'] == pytest.approx(5.5)
    assert line1['current_hour'] == 2

    by_building = aggregate_quality(INSPECTIONS, 'building')
    assert by_building.loc['B-2', 'total_inspected'] == 50
    assert by_building.loc['B-2', 'defect_rate_percent'] == 0


def test_manpower_absenteeism():
    manpower = aggregate_manpower(HEADERS, 'building')
    assert manpower.loc['A-2', 'total'] == 70
    assert manpower.loc['A-2', 'absent'] == 2
    assert manpower.loc['A-2', 'absenteeism_percent'] == pytest.approx(2 / 70 * 100)
    assert manpower.loc['B-2', 'absenteeism_percent'] == pytest.approx(10)


def test_invalid_level_rejected():
    with pytest.raises(ValueError):
        aggregate_production(HEADERS, PRODUCTIONS, 'floor')
    with pytest.raises(ValueError):
        build_entity_aggregates(HEADERS, PRODUCTIONS, INSPECTIONS, 'factory')


def test_line_aggregates_include_quality_only_lines():
    lines = build_entity_aggregates(HEADERS, PRODUCTIONS, INSPECTIONS, 'line')
    assert [row['line'] for row in lines] == ['Line-1', 'Line-2', 'Line-3', 'Line-4']

    line2 = lines[1]
    assert line2['production']['currentHour'] is None
    assert line2['quality']['totalInspected'] == 0

    line4 = lines[3]
    assert line4['production']['targetQty'] == 0
    assert line4['quality']['totalInspected'] == 50
    assert line4['manpower'] == {'total': 0, 'present': 0, 'absent': 0, 'absenteeismPercent': 0.0}

    assert lines[0]['manpower']['absenteeismPercent'] == pytest.approx(5)
    assert lines[0]['production']['currentHour'] == 2


def test_unknown_building_left_out_of_building_list():
    headers = HEADERS + [{'id': 'h9', 'line': 'Line-9', 'total_manpower': 5, 'target_full_day': 50, 'working_hour': 5}]
    productions = PRODUCTIONS + [{'header_id': 'h9', 'hour': 1, 'achieved_qty': 10}]

    buildings = build_entity_aggregates(headers, productions, INSPECTIONS, 'building')
    assert [row['building'] for row in buildings] == ['A-2', 'B-2']
    assert UNKNOWN_BUILDING not in {row['building'] for row in buildings}

    lines = build_entity_aggregates(headers, productions, INSPECTIONS, 'line')
    assert 'Line-9' in {row['line'] for row in lines}


def test_factory_summary_totals():
    summary = summarize_factory(HEADERS, PRODUCTIONS, INSPECTIONS)

    production = summary['production']
    assert production['totalTargetQty'] == 2480
    assert production['totalAchievedQty'] == 360
    assert production['totalVarianceQty'] == -2120
    assert production['avgEffPercent'] == pytest.approx(3140 / 5640 * 100)
    assert production['currentHour'] == 2
    assert production['currentHourEfficiency'] == pytest.approx(1440 / 2280 * 100)

    quality = summary['quality']
    assert quality['totalInspected'] == 250
    assert quality['totalPassed'] == 242
    assert quality['rftPercent'] == pytest.approx(96.8)
    assert quality['defectRatePercent'] == pytest.approx(3.2)
    assert quality['dhuPercent'] == pytest.approx(4.4)
    assert quality['currentHour'] == 2


def test_floor_summary_best_line_and_building():
    payload = build_floor_summary(HEADERS, PRODUCTIONS, INSPECTIONS)

    line_rows = payload['bestLineSelection']['rows']
    assert payload['bestLineSelection']['bestLabel'] == 'Line-1'
    assert [row['label'] for row in line_rows] == ['Line-1', 'Line-2', 'Line-3', 'Line-4']
    assert [row['totalMarks'] for row in line_rows] == [75, 69, 60, 54]
    assert all(row['active'] for row in line_rows)

    building_rows = payload['bestBuildingSelection']['rows']
    assert payload['bestBuildingSelection']['bestLabel'] == 'A-2'
    # Both buildings take every top bucket; A-2 wins on lower absenteeism.
    assert [(row['label'], row['totalMarks'], row['place']) for row in building_rows] == [
        ('A-2', 75, 1),
        ('B-2', 75, 2),
    ]


def test_floor_summary_with_no_data():
    payload = build_floor_summary(None, [], [])
    assert payload['lines'] == []
    assert payload['buildings'] == []
    assert payload['bestLineSelection'] == {'bestLabel': '', 'rows': []}
    assert payload['summary']['production']['totalTargetQty'] == 0
    assert payload['summary']['production']['currentHour'] is None
    assert payload['summary']['quality']['currentHour'] is None


@pytest.mark.parametrize(
    'headers, productions, inspections',
    [
        ('h1', [], []),
        ([], {'header_id': 'h1'}, []),
        ([], [], [['Line-1', 10]]),
    ],
)
def test_floor_summary_rejects_malformed_rows(headers, productions, inspections):
    with pytest.raises(InvalidInputError):
        build_floor_summary(headers, productions, inspections)


def test_padded_names_merge_and_blank_lines_stay_out_of_line_ranking(caplog):
    headers = HEADERS + [{'id': 'h5', 'line': '  ', 'assigned_building': 'B-2 ', 'target_full_day': 100, 'working_hour': 10}]
    inspections = INSPECTIONS + [
        {'line': '', 'building': 'A-2', 'hour_index': 3, 'inspected_qty': 10, 'passed_qty': 10},
        {'line': 'Line-1 ', 'building': ' A-2', 'hour_index': 1, 'inspected_qty': 20, 'passed_qty': 20},
    ]

    with caplog.at_level(logging.DEBUG, logger='floor_aggregation'):
        payload = build_floor_summary(headers, PRODUCTIONS, inspections)

    assert [row['line'] for row in payload['lines']] == ['Line-1', 'Line-2', 'Line-3', 'Line-4']
    assert payload['lines'][0]['quality']['totalInspected'] == 220
    assert payload['bestLineSelection']['bestLabel'] == 'Line-1'

    buildings = {row['building']: row for row in payload['buildings']}
    assert set(buildings) == {'A-2', 'B-2'}
    assert buildings['A-2']['quality']['totalInspected'] == 230
    assert buildings['B-2']['production']['targetQty'] == 640
    assert payload['summary']['quality']['totalInspected'] == 280
    assert 'have no line name' in caplog.text


def test_single_unnamed_inspection_does_not_block_ranking():
    headers = [{'id': 1, 'line': 'Line-1', 'assigned_building': 'A-2', 'target_full_day': 100, 'working_hour': 10}]
    productions = [{'header_id': 1, 'hour': 1, 'achieved_qty': 10}]
    inspections = [{'line': '', 'building': 'A-2', 'hour_index': 1, 'inspected_qty': 5, 'passed_qty': 5}]

    payload = build_floor_summary(headers, productions, inspections)
    assert [row['label'] for row in payload['bestLineSelection']['rows']] == ['Line-1']
    assert payload['bestBuildingSelection']['bestLabel'] == 'A-2'


COMPARE_HEADERS = [
    {'id': 'c1', 'date': '2025-01-01', 'line': 'Line-1', 'assigned_building': 'A-2', 'buyer': 'Acme',
     'style': 'Polo', 'manpower_present': 20, 'smv': 1.5, 'target_full_day': 600},
    {'id': 'c2', 'date': '2025-01-02', 'line': 'Line-1', 'assigned_building': 'A-2', 'buyer': 'Acme',
     'style': 'Polo', 'manpower_present': 20, 'smv': 1.5, 'target_full_day': 600},
    {'id': 'c3', 'date': '2025-01-01', 'line': 'Line-10', 'assigned_building': 'B-2', 'buyer': 'Zen',
     'style': 'Tee', 'manpower_present': 20, 'smv': 0, 'target_full_day': 400},
    {'id': 'c4', 'date': '2025-01-02', 'line': 'Line-2', 'assigned_building': 'A-2', 'buyer': 'Acme',
     'style': 'Shirt', 'manpower_present': 10, 'smv': 6, 'target_full_day': 300},
]

COMPARE_PRODUCTIONS = [
    # No production date: counted on the header's day.
    {'header_id': 'c1', 'achieved_qty': 500},
    {'header_id': 'c2', 'production_date': '2025-01-02', 'achieved_qty': 300},
    {'header_id': 'c3', 'production_date': '2025-01-01', 'achieved_qty': 200},
    {'headerId': 'c4', 'productionDate': '2025-01-02', 'achievedQty': 100},
]

COMPARE_INSPECTIONS = [
    {'report_date': '2025-01-01T09:00:00', 'line': 'Line-1', 'building': 'A-2', 'inspected_qty': 100,
     'passed_qty': 90, 'defective_pcs': 10, 'total_defects': 12},
    {'report_date': '2025-01-02T10:00:00', 'line': 'Line-1', 'building': 'A-2', 'inspected_qty': 100,
     'passed_qty': 100, 'defective_pcs': 0, 'total_defects': 0},
    {'reportDate': '2025-01-02T10:00:00', 'line': 'Line-5', 'building': 'B-3', 'inspectedQty': 50,
     'passedQty': 45, 'defectivePcs': 5, 'totalDefects': 5},
]


def _compare(**kwargs):
    kwargs.setdefault('start', '2025-01-01')
    kwargs.setdefault('end', '2025-01-03')
    return build_floor_compare(COMPARE_HEADERS, COMPARE_PRODUCTIONS, COMPARE_INSPECTIONS, **kwargs)


def test_floor_compare_by_line():
    result = _compare()
    assert result['groupBy'] == 'line'
    assert [row['key'] for row in result['rows']] == ['Line-1', 'Line-2', 'Line-5', 'Line-10']

    line1 = result['rows'][0]
    assert line1['production'] == {
        'targetQty': 1200,
        'achievedQty': 800,
        'varianceQty': -400,
        'avgEffPercent': pytest.approx(50.0),
    }
    assert line1['quality'] == {
        'totalInspected': 200,
        'rftPercent': pytest.approx(95.0),
        'defectRatePercent': pytest.approx(5.0),
        'dhuPercent': pytest.approx(6.0),
    }

    # Quality-only line still gets a row; SMV-less line has no efficiency.
    line5 = result['rows'][2]
    assert line5['building'] == 'B-3'
    assert line5['production']['targetQty'] == 0
    assert line5['quality']['totalInspected'] == 50
    assert result['rows'][3]['production']['avgEffPercent'] == 0.0

    assert result['meta']['buildings'] == ['A-2', 'B-2', 'B-3']
    assert result['meta']['lines'][0] == 'Line-1'
    assert len(result['meta']['lines']) == 15


def test_floor_compare_series_covers_every_day():
    series = _compare()['series']
    assert [day['date'] for day in series] == ['2025-01-01', '2025-01-02', '2025-01-03']

    first, second, last = series
    assert first['production']['targetQty'] == 1000
    assert first['production']['achievedQty'] == 700
    assert first['production']['effPercent'] == pytest.approx(62.5)
    assert first['quality']['dhuPercent'] == pytest.approx(12.0)

    assert second['production']['achievedQty'] == 400
    assert second['production']['effPercent'] == pytest.approx(1050 / 1800 * 100)
    assert second['quality']['totalInspected'] == 150
    assert second['quality']['rftPercent'] == pytest.approx(145 / 150 * 100)

    assert last['production'] == {'targetQty': 0, 'achievedQty': 0, 'varianceQty': 0, 'effPercent': 0.0}
    assert last['quality']['totalInspected'] == 0


def test_floor_compare_summary_per_day_averages():
    summary = _compare()['summary']
    production = summary['production']
    assert production['totalTargetQty'] == 2200
    assert production['totalAchievedQty'] == 1200
    assert production['totalVarianceQty'] == -1000
    assert production['avgEffPercent'] == pytest.approx(60.0)
    assert production['daysCount'] == 3
    assert production['avgTargetPerDay'] == pytest.approx(2200 / 3)
    assert production['avgAchievedPerDay'] == 400

    quality = summary['quality']
    assert quality['totalInspected'] == 250
    assert quality['rftPercent'] == pytest.approx(94.0)
    assert quality['defectRatePercent'] == pytest.approx(6.0)
    assert quality['dhuPercent'] == pytest.approx(6.8)


def test_floor_compare_by_building():
    rows = _compare(group_by='building')['rows']
    assert [row['key'] for row in rows] == ['A-2', 'B-2', 'B-3']
    assert rows[0]['production']['targetQty'] == 1500
    assert rows[0]['production']['achievedQty'] == 900
    assert rows[0]['quality']['totalInspected'] == 200
    assert rows[1]['quality']['totalInspected'] == 0
    assert rows[2]['line'] == ''


def test_floor_compare_by_segment():
    rows = _compare(group_by='segment')['rows']
    assert [row['key'] for row in rows] == [
        'A-2__Line-1__Acme__Polo',
        'A-2__Line-2__Acme__Shirt',
        'B-2__Line-10__Zen__Tee',
        'B-3__Line-5____',
    ]
    polo = rows[0]
    assert (polo['buyer'], polo['style']) == ('Acme', 'Polo')
    # Inspections carry no buyer or style; segments share their line's quality.
    assert polo['quality']['totalInspected'] == 200
    assert rows[1]['quality']['totalInspected'] == 0
    assert rows[3]['quality']['totalInspected'] == 50


def test_floor_compare_line_filter():
    result = _compare(line='Line-1')
    assert [row['key'] for row in result['rows']] == ['Line-1']
    assert result['series'][0]['production']['targetQty'] == 600
    assert result['summary']['quality']['totalInspected'] == 200

    assert len(_compare(line='ALL')['rows']) == 4


def test_floor_compare_building_filter():
    result = _compare(building='B-2', group_by='building')
    assert [row['key'] for row in result['rows']] == ['B-2']
    assert result['meta']['buildings'] == ['B-2']
    assert result['summary']['production']['totalAchievedQty'] == 200


def test_floor_compare_without_rows():
    result = build_floor_compare([], [], [], start='2025-01-01', end='2025-01-01')
    assert result['rows'] == []
    assert result['meta']['buildings'] == ['A-2', 'B-2', 'A-3', 'B-3', 'A-4', 'B-4', 'A-5', 'B-5']
    assert result['summary']['production']['daysCount'] == 1
    assert result['summary']['production']['avgTargetPerDay'] == 0


@pytest.mark.parametrize(
    'kwargs',
    [
        {'group_by': 'shift'},
        {'start': '2025-01-03', 'end': '2025-01-01'},
        {'start': None},
    ],
)
def test_floor_compare_rejects_bad_arguments(kwargs):
    with pytest.raises(ValueError):
        _compare(**kwargs)
