from awardroute.services.query_groups import QueryGroup, build_query_groups


def _covered(groups, legs):
    return all(any(g.covers(o, d) for g in groups) for o, d in legs)


def test_terminal_and_interior_buckets():
    legs = [("JFK", "LHR"), ("JFK", "BOS"), ("BOS", "LHR")]

    groups = build_query_groups(legs, ["LHR"])

    assert [g.identifier for g in groups] == ["BOS/JFK-LHR", "JFK-BOS"]


def test_dest_subset_groups_are_merged():
    legs = [("AAA", "XXX"), ("AAA", "YYY"), ("BBB", "XXX")]

    groups = build_query_groups(legs, ["ZZZ"])

    assert [g.identifier for g in groups] == ["AAA/BBB-XXX/YYY"]


def test_requested_destinations_merge_on_keys():
    legs = [("JFK", "LHR"), ("JFK", "CDG")]

    groups = build_query_groups(legs, ["LHR", "CDG"])

    assert [g.identifier for g in groups] == ["JFK-CDG/LHR"]


def test_cap_blocks_merges():
    legs = [(o, d) for o in ("AAA", "BBB", "CCC") for d in ("XXX", "YYY")]

    groups = build_query_groups(legs, ["ZZZ"], cap=4)

    assert len(groups) == 2
    assert all(g.size <= 4 for g in groups)
    assert _covered(groups, legs)


def test_oversize_terminal_group_is_split():
    origins = [f"A{i:02d}" for i in range(70)]
    legs = [(o, "LHR") for o in origins]

    groups = build_query_groups(legs, ["LHR"])

    assert sorted(len(g.keys) for g in groups) == [10, 60]
    assert all(g.size <= 60 for g in groups)
    assert _covered(groups, legs)


def test_larger_destination_sets_come_first():
    legs = [("AAA", "XXX"), ("BBB", "XXX"), ("BBB", "YYY"), ("CCC", "LHR")]

    groups = build_query_groups(legs, ["LHR"])

    assert [len(g.dests) for g in groups] == sorted((len(g.dests) for g in groups), reverse=True)
    assert groups[0].identifier == "AAA/BBB-XXX/YYY"


def test_every_leg_is_covered():
    legs = [
        ("JFK", "LHR"), ("JFK", "YYZ"), ("YYZ", "LHR"), ("JFK", "BOS"),
        ("BOS", "YYZ"), ("JFK", "DUB"), ("DUB", "LHR"), ("BOS", "DUB"),
        ("EWR", "CDG"), ("EWR", "LHR"),
    ]

    groups = build_query_groups(legs, ["LHR", "CDG"])

    assert _covered(groups, legs)
    assert all(g.size <= 60 for g in groups)


def test_empty_legs():
    assert build_query_groups([], ["LHR"]) == []


def test_query_group_identifier_is_sorted():
    group = QueryGroup({"JFK", "BOS"}, {"LHR", "CDG"})
    assert group.identifier == "BOS/JFK-CDG/LHR"
    assert group.size == 4
