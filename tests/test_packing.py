from box_planner.constraints import MaxCountPerBox
from box_planner.layers import LayerPacker, LayerStabiliser
from box_planner.lists import ItemList, PackedItemList
from box_planner.models import Box, Item, PackedItem, PackedLayer, Rotation, WorkingVolume
from box_planner.packing import VolumePacker


def _box(reference: str, width: int, length: int, depth: int, max_weight: int = 10000, empty_weight: int = 0) -> Box:
    return Box(
        reference=reference,
        outer_width=width,
        outer_length=length,
        outer_depth=depth,
        empty_weight=empty_weight,
        inner_width=width,
        inner_length=length,
        inner_depth=depth,
        max_weight=max_weight,
    )


def _cubes(n: int, size: int = 10, weight: int = 100, constraint=None) -> list[Item]:
    return [Item("cube", size, size, size, weight, Rotation.NEVER, constraint) for _ in range(n)]


def test_fills_box_layer_by_layer():
    packed = VolumePacker(_box("Cube", 20, 20, 20), _cubes(8)).pack()

    assert len(packed.items) == 8
    assert sorted((p.x, p.y, p.z) for p in packed.items) == [
        (x, y, z) for x in (0, 10) for y in (0, 10) for z in (0, 10)
    ]
    assert packed.volume_utilisation == 100.0


def test_thin_items_stack_into_separate_layers():
    box = _box("Flat", 296, 296, 8, max_weight=1000, empty_weight=10)
    items = [Item("sheet", 250, 250, 2, 200) for _ in range(3)]

    packed = VolumePacker(box, items).pack()

    assert len(packed.items) == 3
    assert sorted(p.z for p in packed.items) == [0, 2, 4]
    assert packed.weight == 610


def test_leaves_overflow_unpacked():
    packed = VolumePacker(_box("Tall", 10, 10, 30), _cubes(4)).pack()

    assert len(packed.items) == 3
    assert packed.used_depth == 30
    assert packed.remaining_depth == 0


def test_never_item_does_not_fit_a_box_turned_sideways():
    box = _box("Long", 10, 30, 10)
    plank = Item("plank", 30, 10, 10, 5, Rotation.NEVER)

    packed = VolumePacker(box, [plank]).pack()

    assert len(packed.items) == 0


def test_keep_flat_item_turns_to_fit_a_long_box():
    box = _box("Long", 10, 30, 10)
    plank = Item("plank", 30, 10, 10, 5, Rotation.KEEP_FLAT)

    packed = VolumePacker(box, [plank]).pack()

    [placed] = list(packed.items)
    assert (placed.x, placed.y, placed.z) == (0, 0, 0)
    assert (placed.width, placed.length, placed.depth) == (10, 30, 10)


def test_swapped_trial_keeps_never_items_in_source_order():
    box = _box("Wide", 30, 10, 10)
    plank = Item("plank", 30, 10, 10, 5, Rotation.NEVER)
    packer = VolumePacker(box, [plank])

    packed = packer._pack_rotation(box.inner_length, box.inner_width, True)

    [placed] = list(packed.items)
    assert (placed.x, placed.y, placed.z) == (0, 0, 0)
    assert (placed.width, placed.length, placed.depth) == (30, 10, 10)
    assert packer.layer_packer.factory.box_is_rotated is True

    packer._pack_rotation(box.inner_width, box.inner_length, False)
    assert packer.layer_packer.factory.box_is_rotated is False


def test_weight_limit_stops_packing():
    box = _box("Light", 20, 20, 20, max_weight=350)

    packed = VolumePacker(box, _cubes(8)).pack()

    assert len(packed.items) == 3
    assert packed.weight <= box.max_weight


def test_constraint_limits_count_per_box():
    limit = MaxCountPerBox(2)

    packed = VolumePacker(_box("Cube", 20, 20, 20), _cubes(8, constraint=limit)).pack()

    assert len(packed.items) == 2


def test_layer_packer_returns_rejected_items_last():
    box = _box("Light", 20, 20, 20, max_weight=150)
    heavy = Item("heavy", 10, 10, 10, 200, Rotation.NEVER)
    light = Item("light", 10, 10, 10, 100, Rotation.NEVER)
    items = ItemList.from_items([heavy, light])

    layer, remaining = LayerPacker(box).pack_layer(items, PackedItemList(), 0, 0, 0, 20, 20, 20, 0)

    assert [p.item for p in layer.items] == [light]
    assert remaining.as_list() == [heavy]


def test_working_volume_ignores_constraints():
    volume = WorkingVolume.of(20, 20, 20)
    limit = MaxCountPerBox(1)

    packed = VolumePacker(volume, _cubes(4, constraint=limit), single_pass=True).pack()

    assert len(packed.items) == 4


def test_stabiliser_puts_broadest_layer_at_the_bottom():
    item = Item("cube", 10, 10, 10, 1)
    narrow = PackedLayer([PackedItem(item, 0, 0, 0, 10, 10, 5)])
    broad = PackedLayer([PackedItem(item, 0, 0, 5, 20, 20, 8)])

    stabilised = LayerStabiliser().stabilise([narrow, broad])

    assert stabilised[0].footprint == 400
    assert stabilised[0].start_z == 0
    assert stabilised[1].start_z == 8
    assert stabilised[1].depth == 5


def test_spare_height_above_an_item_is_filled():
    box = _box("Step", 20, 10, 20)
    tall = Item("tall", 10, 10, 20, 100, Rotation.NEVER)
    shorts = [Item("short", 10, 10, 10, 100, Rotation.NEVER) for _ in range(2)]

    packed = VolumePacker(box, [tall] + shorts).pack()

    positions = {id(p.item): (p.x, p.y, p.z) for p in packed.items}
    assert positions[id(tall)] == (0, 0, 0)
    assert sorted(positions[id(item)] for item in shorts) == [(10, 0, 0), (10, 0, 10)]


def test_spare_length_beside_an_item_is_filled():
    box = _box("Square", 20, 20, 10)
    long_item = Item("long", 10, 20, 10, 100, Rotation.NEVER)
    cubes = _cubes(2)
    items = ItemList.from_items([long_item] + cubes)

    layer, remaining = LayerPacker(box).pack_layer(items, PackedItemList(), 0, 0, 0, 20, 20, 10, 0)

    assert len(remaining) == 0
    positions = {id(p.item): (p.x, p.y, p.z) for p in layer.items}
    assert positions[id(long_item)] == (0, 0, 0)
    assert positions[id(cubes[0])] == (10, 0, 0)
    assert positions[id(cubes[1])] == (10, 10, 0)
