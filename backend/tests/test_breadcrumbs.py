from app.breadcrumbs import extract_breadcrumb_context, generate_breadcrumb_items

EXAM = {'id': 'e1', 'name': 'Exit Exam'}
DEPT = {'id': 'd1', 'name': 'Computer Science'}
PERIOD = {'id': 'p1', 'name': 'Year 4'}
MATERIAL = {'id': 'm1', 'title': 'Algorithms Quiz'}


def test_empty_context_is_just_home():
    expected = [{'id': 'home', 'name': 'Home', 'path': '/', 'isClickable': True}]
    assert generate_breadcrumb_items() == expected
    assert generate_breadcrumb_items({}) == expected


def test_full_context_in_hierarchy_order():
    items = generate_breadcrumb_items({'material': MATERIAL, 'academicPeriod': PERIOD, 'department': DEPT, 'examType': EXAM})
    assert len(items) == 5
    assert [i['path'] for i in items] == ['/', '/exam-types/e1', '/departments/d1', '/periods/p1', '/materials/m1']
    assert [i['name'] for i in items][-1] == 'Algorithms Quiz'
    assert [i['isClickable'] for i in items] == [True, True, True, True, False]


def test_partial_context_last_item_not_clickable():
    items = generate_breadcrumb_items({'examType': EXAM, 'department': DEPT})
    assert [i['id'] for i in items] == ['home', 'e1', 'd1']
    assert items[-1]['isClickable'] is False
    assert items[1]['isClickable'] is True


def test_extract_context_from_nested_material():
    material = {**MATERIAL, 'academicPeriod': {**PERIOD, 'department': {**DEPT, 'examType': EXAM}}}
    context = extract_breadcrumb_context({'material': material})
    assert context['examType'] == EXAM
    assert context['department']['id'] == 'd1'
    assert context['academicPeriod']['id'] == 'p1'
    assert context['material']['id'] == 'm1'
    assert len(generate_breadcrumb_items(context)) == 5


def test_extract_context_keeps_shallow_levels_without_parents():
    context = extract_breadcrumb_context({'department': DEPT})
    assert context == {'department': DEPT}
