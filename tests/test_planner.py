import itertools

from box_planner.constraints import MaxCountPerBox, NoStackingOnSameType
from box_planner.errors import ItemTooLargeError, NoBoxesAvailableError, PackingTimeoutError
from box_planner.models import Box, Item, Rotation
from box_planner.planner import InfalliblePacker, Packer, PackerState
from box_planner.timeout import DefaultTimeoutChecker


def _box(reference: str, width: int, length: int, depth: int, max_weight: int = 10000, quantity=None) -> Box:
    return Box(
        reference=reference,
        outer_width=width,
        outer_length=length,
        outer_depth=depth,
        empty_weight=0,
        inner_width=width,
        inner_length=length,
        inner_depth=depth,
        max_weight=max_weight,
        quantity_available=quantity,
    )


def _cube(weight: int = 100, constraint=None) -> Item:
    return Item("cube", 10, 10, 10, weight, Rotation.NEVER, constraint)


def _assert_valid_packing(packed_boxes, expected_items):
    seen = []
    for packed_box in packed_boxes:
        box = packed_box.box
        assert packed_box.weight <= box.max_weight
        placed = list(packed_box.items)
        for p in placed:
            assert 0 <= p.x and p.x + p.width <= box.inner_width
            assert 0 <= p.y and p.y + p.length <= box.inner_length
            assert 0 <= p.z and p.z + p.depth <= box.inner_depth
            assert (p.width, p.length, p.depth) in p.item.permutations(), f"{p} breaks its rotation policy"
        for a, b in itertools.combinations(placed, 2):
            overlap = (
                a.x < b.x + b.width
                and b.x < a.x + a.width
                and a.y < b.y + b.length
                and b.y < a.y + a.length
                and a.z < b.z + b.depth
                and b.z < a.z + a.depth
            )
            assert not overlap, f"{a} overlaps {b}"
        seen.extend(id(p.item) for p in placed)
    assert sorted(seen) == sorted(id(item) for item in expected_items)


def test_single_box_holds_everything():
    packer = Packer()
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(_cube(), 8)

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 1
    assert len(packed_boxes.top().items) == 8
    assert packer.state == PackerState.DONE


def test_add_item_creates_distinct_copies():
    packer = Packer()
    packer.add_item(_cube(), 3)

    items = packer.items.as_list()
    assert len(items) == 3
    assert len({id(item) for item in items}) == 3


def test_smallest_suitable_box_is_chosen():
    packer = Packer()
    packer.add_box(_box("Big", 100, 100, 100))
    packer.add_box(_box("Small", 20, 20, 20))
    packer.add_item(_cube(), 2)

    packed_boxes = packer.pack()

    assert [packed_box.box.reference for packed_box in packed_boxes] == ["Small"]


def test_weight_is_balanced_across_boxes():
    packer = Packer()
    packer.add_box(_box("Tall", 10, 10, 30))
    items = [_cube() for _ in range(4)]
    packer.set_items(items)

    packed_boxes = packer.pack()

    assert [len(packed_box.items) for packed_box in packed_boxes] == [2, 2]
    assert packed_boxes.weight_variance == 0.0
    _assert_valid_packing(packed_boxes, items)


def test_balancing_can_be_switched_off():
    packer = Packer(max_boxes_to_balance_weight=0)
    packer.add_box(_box("Tall", 10, 10, 30))
    packer.add_item(_cube(), 4)

    packed_boxes = packer.pack()

    assert [len(packed_box.items) for packed_box in packed_boxes] == [3, 1]


def test_item_too_large_for_every_box():
    packer = Packer()
    packer.add_box(_box("Cube", 20, 20, 20))
    oversized = Item("crate", 50, 50, 50, 10)
    packer.add_item(oversized)

    try:
        packer.pack()
        assert False, "ItemTooLargeError expected"
    except ItemTooLargeError as exc:
        assert exc.item.description == "crate"
    assert packer.state == PackerState.FAILED


def test_item_too_heavy_for_every_box():
    packer = Packer()
    packer.add_box(_box("Cube", 20, 20, 20, max_weight=50))
    packer.add_item(_cube(weight=100))

    try:
        packer.pack()
        assert False, "ItemTooLargeError expected"
    except ItemTooLargeError:
        pass


def test_precheck_rejects_never_item_fitting_only_a_box_turned_sideways():
    packer = Packer()
    packer.add_box(_box("Long", 10, 30, 10))
    plank = Item("plank", 30, 10, 10, 5, Rotation.NEVER)
    packer.add_item(plank)

    try:
        packer.pack()
        assert False, "ItemTooLargeError expected"
    except ItemTooLargeError as exc:
        assert exc.item is plank


def test_keep_flat_item_is_turned_to_fit_a_long_box():
    packer = Packer()
    packer.add_box(_box("Long", 10, 30, 10))
    plank = Item("plank", 30, 10, 10, 5, Rotation.KEEP_FLAT)
    packer.add_item(plank)

    packed_boxes = packer.pack()

    [placed] = list(packed_boxes.top().items)
    assert (placed.width, placed.length, placed.depth) == (10, 30, 10)
    _assert_valid_packing(packed_boxes, [plank])


def test_never_items_keep_source_order_in_every_box():
    packer = Packer()
    packer.add_box(_box("Wide", 30, 10, 10))
    packer.add_box(_box("Long", 10, 30, 10))
    items = [Item("plank", 30, 10, 10, 5, Rotation.NEVER) for _ in range(3)]
    packer.set_items(items)

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 3
    assert all(packed_box.box.reference == "Wide" for packed_box in packed_boxes)
    _assert_valid_packing(packed_boxes, items)


def test_limited_box_supply_runs_out():
    packer = Packer()
    packer.add_box(_box("Cube", 20, 20, 20, quantity=1))
    packer.add_item(_cube(), 9)

    try:
        packer.pack()
        assert False, "NoBoxesAvailableError expected"
    except NoBoxesAvailableError as exc:
        assert len(exc.items) == 1


def test_box_quantity_can_be_overridden():
    box = _box("Cube", 20, 20, 20)
    packer = Packer()
    packer.add_box(box)
    packer.set_box_quantity(box, 0)
    packer.add_item(_cube())

    try:
        packer.pack()
        assert False, "NoBoxesAvailableError expected"
    except NoBoxesAvailableError:
        pass


def test_infallible_packer_sets_aside_what_cannot_be_packed():
    packer = InfalliblePacker()
    packer.add_box(_box("Cube", 20, 20, 20, quantity=1))
    packer.add_item(_cube(), 9)
    packer.add_item(Item("crate", 50, 50, 50, 10))

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 1
    assert len(packed_boxes.top().items) == 8
    unpacked = packer.unpacked_items.as_list()
    assert sorted(item.description for item in unpacked) == ["crate", "cube"]
    assert len(packer.items) == 10


def test_infallible_packer_with_nothing_packable():
    packer = InfalliblePacker()
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(Item("crate", 50, 50, 50, 10))

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 0
    assert len(packer.unpacked_items) == 1


def test_enforce_single_box():
    packer = Packer(enforce_single_box=True)
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(_cube(), 9)

    try:
        packer.pack()
        assert False, "NoBoxesAvailableError expected"
    except NoBoxesAvailableError as exc:
        assert len(exc.items) == 9

    packer = Packer(enforce_single_box=True)
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(_cube(), 8)
    assert len(packer.pack()) == 1


def test_max_count_per_box_spreads_items():
    limit = MaxCountPerBox(2)
    packer = Packer()
    packer.add_box(_box("Cube", 20, 20, 20))
    items = [_cube(constraint=limit) for _ in range(8)]
    packer.set_items(items)

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 4
    assert all(len(packed_box.items) == 2 for packed_box in packed_boxes)
    _assert_valid_packing(packed_boxes, items)


def test_no_stacking_on_same_type_keeps_items_on_the_floor():
    rule = NoStackingOnSameType()
    packer = Packer()
    packer.add_box(_box("Cube", 20, 20, 20))
    items = [_cube(constraint=rule) for _ in range(4)]
    packer.set_items(items)

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 1
    assert all(p.z == 0 for p in packed_boxes.top().items)


def test_timeout_aborts_packing():
    ticks = itertools.count(0, 5)
    checker = DefaultTimeoutChecker(1.0, clock=lambda: next(ticks))
    packer = Packer(timeout_checker=checker)
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(_cube(), 2)

    try:
        packer.pack()
        assert False, "PackingTimeoutError expected"
    except PackingTimeoutError as exc:
        assert exc.timeout == 1.0
        assert exc.spent_time >= 1.0
    assert packer.state == PackerState.FAILED


class _CountingTimeoutChecker(DefaultTimeoutChecker):
    def __init__(self, timeout: float):
        super().__init__(timeout)
        self.starts = 0

    def start(self, start_time=None) -> None:
        self.starts += 1
        super().start(start_time)


def test_infallible_packer_keeps_one_timeout_budget_across_retries():
    checker = _CountingTimeoutChecker(60.0)
    packer = InfalliblePacker(timeout_checker=checker)
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(Item("crate", 50, 50, 50, 10), 2)
    packer.add_item(_cube())

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 1
    assert len(packer.unpacked_items) == 2
    assert checker.starts == 1


def test_infallible_packer_does_not_swallow_timeouts():
    ticks = itertools.count(0, 5)
    checker = DefaultTimeoutChecker(1.0, clock=lambda: next(ticks))
    packer = InfalliblePacker(timeout_checker=checker)
    packer.add_box(_box("Cube", 20, 20, 20))
    packer.add_item(Item("crate", 50, 50, 50, 10), 2)
    packer.add_item(_cube())

    try:
        packer.pack()
        assert False, "PackingTimeoutError expected"
    except PackingTimeoutError:
        pass
    assert packer.state == PackerState.FAILED


def test_pack_box_ignores_the_catalog():
    packer = Packer()
    packer.add_item(_cube(), 3)

    packed_box = packer.pack_box(_box("Tall", 10, 10, 20))

    assert len(packed_box.items) == 2


def test_mixed_items_pack_without_overlap():
    packer = Packer()
    packer.add_box(_box("Medium", 396, 296, 296, max_weight=20000))
    packer.add_box(_box("Large", 596, 396, 396, max_weight=30000))
    items = (
        [Item("book", 210, 297, 35, 1100, Rotation.KEEP_FLAT) for _ in range(6)]
        + [Item("mug", 90, 120, 100, 350, Rotation.NEVER) for _ in range(8)]
        + [Item("lamp", 180, 180, 380, 1600) for _ in range(2)]
    )
    packer.set_items(items)

    packed_boxes = packer.pack()

    _assert_valid_packing(packed_boxes, items)


def test_thin_sheets_share_one_box():
    box = Box("Le petite box", 300, 300, 10, 10, 296, 296, 8, 1000)
    packer = Packer()
    packer.add_box(box)
    packer.add_item(Item("Item 1", 250, 250, 2, 200))
    packer.add_item(Item("Item 2", 250, 250, 2, 200))
    packer.add_item(Item("Item 3", 250, 250, 2, 200))

    packed_boxes = packer.pack()

    assert len(packed_boxes) == 1
    assert len(packed_boxes.top().items) == 3
    assert packed_boxes.top().weight == 610


def test_unit_cubes_are_split_evenly():
    packer = Packer()
    packer.add_box(_box("Column", 1, 1, 3, max_weight=3))
    packer.add_item(Item("unit", 1, 1, 1, 1, Rotation.NEVER), 4)

    packed_boxes = packer.pack()

    assert [len(packed_box.items) for packed_box in packed_boxes] == [2, 2]


def test_unit_cubes_with_and_without_count_limit():
    packer = Packer()
    packer.add_box(_box("Ten", 10, 10, 10))
    packer.add_item(Item("unit", 1, 1, 1, 1), 8)
    assert len(packer.pack()) == 1

    limited = Packer()
    limited.add_box(_box("Ten", 10, 10, 10))
    limited.add_item(Item("unit", 1, 1, 1, 1, constraint=MaxCountPerBox(2)), 8)
    assert len(limited.pack()) == 4


def test_repeated_runs_give_identical_layouts():
    def layout():
        packer = Packer()
        packer.add_box(_box("Medium", 396, 296, 296, max_weight=20000))
        packer.add_item(Item("book", 210, 297, 35, 1100, Rotation.KEEP_FLAT), 6)
        packer.add_item(Item("mug", 90, 120, 100, 350, Rotation.NEVER), 8)
        return [
            [(p.item.description, p.x, p.y, p.z, p.width, p.length, p.depth) for p in packed_box.items]
            for packed_box in packer.pack()
        ]

    assert layout() == layout()
