import pytest

from conftest import make_edge
from truck_sim import FINISHED, IDLE, MOVING, WAITING, Beacon, FleetSim, InvalidEdge, Node, SimulationConfig
from truck_sim.demo_map import demo_map


def test_two_edge_trip_completes_in_ten_ticks(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=20.0, agent_speed_max=20.0, dt=1.0)
    tid = sim.spawn_truck("A", "C")
    assert tid == "T-1"
    assert sim.network.edges["ab"].current_load == 1

    for _ in range(9):
        sim.tick()
    assert sim.get_stats().completed_trips == 0
    assert tid in sim.trucks
    assert sim.trucks[tid].current_edge == "bc"

    sim.tick()
    stats = sim.get_stats()
    assert stats.completed_trips == 1
    assert stats.active_trucks == 0
    assert tid not in sim.trucks
    assert stats.avg_travel_time == pytest.approx(10.0)
    assert stats.total_distance == pytest.approx(200.0)
    assert stats.avg_delay == pytest.approx(0.0)
    assert sim.network.edges["bc"].current_load == 0


def test_position_is_interpolated_along_edge(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=20.0, agent_speed_max=20.0)
    tid = sim.spawn_truck("A", "C")
    sim.tick()
    assert sim.trucks[tid].position == pytest.approx((20.0, 0.0))
    assert sim.trucks[tid].progress == pytest.approx(20.0)


def test_loads_match_occupants_every_tick():
    sim = FleetSim(SimulationConfig(seed=17, overflow_policy="queue"))
    sim.load_map(*demo_map())
    for _ in range(8):
        assert sim.spawn_random_truck() is not None
    for _ in range(120):
        sim.tick()
        sim.check_invariants()
    assert sim.get_stats().completed_trips > 0


def test_congested_route_is_avoided(make_sim):
    nodes = [Node("A", 0, 0), Node("B", 100, 0)]
    edges = [
        make_edge("r1", "A", "B", 100, capacity=1, base_travel_time=10.0),
        make_edge("r2", "A", "B", 100, capacity=5, base_travel_time=12.0),
    ]
    sim = make_sim(
        nodes, edges,
        congestion_sensitivity=1.0, congestion_exponent=2.0,
        agent_speed_min=1.0, agent_speed_max=1.0,
    )
    first = sim.spawn_truck("A", "B")
    assert sim.trucks[first].plan == ["r1"]

    sim.tick()
    assert sim.network.edges["r1"].current_weight == pytest.approx(20.0)

    second = sim.spawn_truck("A", "B")
    assert sim.trucks[second].plan == ["r2"]

    sim.tick()
    assert sim.network.edges["r2"].current_weight == pytest.approx(12.48)


def test_closed_edge_triggers_detour_on_replan(make_sim, line_map):
    sim = make_sim(*line_map, replan_interval=1.0, agent_speed_min=10.0, agent_speed_max=10.0)
    tid = sim.spawn_truck("A", "C")
    assert sim.trucks[tid].plan == ["ab", "bc"]

    sim.set_edge_closed("bc", True)
    sim.tick()

    truck = sim.trucks[tid]
    assert truck.plan == ["ab", "bd", "dc"]
    assert truck.reroute_count == 1
    assert truck.state == MOVING


def test_closed_edge_without_alternative_keeps_plan(make_sim, straight_map):
    sim = make_sim(*straight_map, replan_interval=1.0, agent_speed_min=20.0, agent_speed_max=20.0)
    tid = sim.spawn_truck("A", "C")
    sim.set_edge_closed("bc", True)

    sim.tick()
    truck = sim.trucks[tid]
    assert truck.plan == ["ab", "bc"]
    assert truck.reroute_count == 0

    for _ in range(10):
        sim.tick()
    assert truck.state == WAITING
    assert truck.current_edge is None
    assert truck.waiting_at == "B"
    assert sim.network.edges["ab"].current_load == 0
    assert sim.network.edges["bc"].current_load == 0
    sim.check_invariants()


def test_waiting_truck_is_not_released_when_edge_reopens(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=20.0, agent_speed_max=20.0)
    tid = sim.spawn_truck("A", "C")
    sim.set_edge_closed("bc", True)
    for _ in range(5):
        sim.tick()
    assert sim.trucks[tid].state == WAITING

    sim.set_edge_closed("bc", False)
    for _ in range(10):
        sim.tick()
    assert sim.trucks[tid].state == WAITING
    assert sim.get_stats().completed_trips == 0


def test_queue_policy_enters_closed_edge(make_sim, straight_map):
    sim = make_sim(*straight_map, overflow_policy="queue", agent_speed_min=20.0, agent_speed_max=20.0)
    tid = sim.spawn_truck("A", "C")
    sim.set_edge_closed("bc", True)
    for _ in range(5):
        sim.tick()
    assert sim.trucks[tid].state == MOVING
    assert sim.trucks[tid].current_edge == "bc"
    assert sim.network.edges["bc"].current_load == 1


def test_replan_counts_every_pass(make_sim, straight_map):
    sim = make_sim(*straight_map, replan_interval=3.0, agent_speed_min=1.0, agent_speed_max=1.0)
    tid = sim.spawn_truck("A", "C")
    for _ in range(7):
        sim.tick()
    # passes at ticks 3 and 6, identical plan both times
    assert sim.trucks[tid].reroute_count == 2
    assert sim.trucks[tid].plan == ["ab", "bc"]


def test_replan_interval_in_ticks_follows_dt(make_sim, straight_map):
    sim = make_sim(*straight_map, dt=0.5, replan_interval=2.0, agent_speed_min=1.0, agent_speed_max=1.0)
    tid = sim.spawn_truck("A", "C")
    for _ in range(3):
        sim.tick()
    assert sim.trucks[tid].reroute_count == 0
    sim.tick()
    assert sim.trucks[tid].reroute_count == 1


@pytest.mark.parametrize(
    "dt, interval, n_ticks, expected",
    [
        (0.4, 1.0, 25, 10),
        (2.0, 5.0, 10, 4),
        (0.3, 1.0, 100, 30),
    ],
)
def test_replan_cadence_when_dt_does_not_divide_interval(make_sim, straight_map, dt, interval, n_ticks, expected):
    sim = make_sim(*straight_map, dt=dt, replan_interval=interval, agent_speed_min=1.0, agent_speed_max=1.0)
    tid = sim.spawn_truck("A", "C")
    for _ in range(n_ticks):
        sim.tick()
    assert sim.trucks[tid].current_edge == "ab"
    assert sim.trucks[tid].reroute_count == expected


def test_replan_sees_loads_from_same_tick_motion(make_sim):
    # "feeder" finishes pb on tick 2 and takes the single-lane edge; "hauler"
    # re-plans on that same tick from B and must see the raised weight
    nodes = [
        Node("A", -800.0, 0.0),
        Node("P", 180.0, 0.0),
        Node("B", 200.0, 0.0),
        Node("C", 300.0, 0.0),
    ]
    edges = [
        make_edge("ab", "A", "B", 1000),
        make_edge("pb", "P", "B", 20),
        make_edge("fast", "B", "C", 100, capacity=1, base_travel_time=10.0),
        make_edge("slow", "B", "C", 100, capacity=5, base_travel_time=12.0),
    ]
    sim = make_sim(nodes, edges, replan_interval=2.0, agent_speed_min=10.0, agent_speed_max=10.0)
    feeder = sim.spawn_truck("P", "C")
    hauler = sim.spawn_truck("A", "C")
    assert sim.trucks[feeder].plan == ["pb", "fast"]
    assert sim.trucks[hauler].plan == ["ab", "fast"]

    sim.tick()
    assert sim.trucks[hauler].reroute_count == 0
    sim.tick()

    assert sim.trucks[feeder].current_edge == "fast"
    assert sim.network.edges["fast"].current_weight == pytest.approx(20.0)
    assert sim.trucks[hauler].reroute_count == 1
    assert sim.trucks[hauler].plan == ["ab", "slow"]


def test_localization_uses_post_move_position(make_sim, straight_map):
    nodes, edges, _ = straight_map
    beacons = [Beacon("p", 0.0, 0.0), Beacon("q", 100.0, 0.0)]
    sim = make_sim(nodes, edges, beacons, hysteresis_threshold=1, agent_speed_min=60.0, agent_speed_max=60.0)
    tid = sim.spawn_truck("A", "C")
    sim.tick()
    truck = sim.trucks[tid]
    assert truck.position == pytest.approx((60.0, 0.0))
    assert truck.inferred_beacon == "q"


def test_configure_seed_rebuilds_generator(make_sim, straight_map):
    sim = make_sim(*straight_map)
    sim.configure(seed=5)
    first = sim.rng.uniform(0, 1, 3)
    sim.configure(seed=5)
    assert list(sim.rng.uniform(0, 1, 3)) == list(first)
    rng = sim.rng
    sim.configure(congestion_exponent=3.0)
    assert sim.rng is rng


def test_localization_commits_after_threshold(make_sim, line_map):
    sim = make_sim(*line_map, hysteresis_threshold=3, agent_speed_min=1.0, agent_speed_max=1.0)
    tid = sim.spawn_truck("A", "C")
    sim.tick()
    sim.tick()
    assert sim.trucks[tid].inferred_beacon is None
    sim.tick()
    truck = sim.trucks[tid]
    assert truck.inferred_beacon == "b1"
    assert truck.inferred_edge == "ab"
    assert truck.localization.last_switch_time == pytest.approx(3.0)


def test_spawn_failures_create_no_truck(make_sim, line_map):
    sim = make_sim(*line_map)
    assert sim.spawn_truck("Z", "C") is None
    assert sim.spawn_truck("A", "Z") is None
    assert sim.spawn_truck("C", "A") is None
    assert sim.spawn_truck("A", "A") is None
    assert sim.trucks == {}
    assert sim.spawn_truck("A", "C") == "T-1"


def test_removing_occupied_edge_idles_truck(make_sim, line_map):
    sim = make_sim(*line_map)
    tid = sim.spawn_truck("A", "C")
    assert sim.remove_edge("ab")
    truck = sim.trucks[tid]
    assert truck.state == IDLE
    assert truck.current_edge is None
    sim.tick()
    sim.check_invariants()
    assert sim.trucks[tid].state == IDLE


def test_remove_node_cascades_through_engine(make_sim, line_map):
    sim = make_sim(*line_map)
    assert sim.remove_node("D")
    assert set(sim.network.edges) == {"ab", "bc"}
    assert not sim.remove_node("D")
    sim.check_invariants()


def test_edit_operations_on_unknown_ids(make_sim, line_map):
    sim = make_sim(*line_map)
    assert not sim.remove_edge("zz")
    assert not sim.remove_beacon("zz")
    assert not sim.toggle_edge_closure("zz")
    assert not sim.add_edge(make_edge("ax", "A", "X", 10))
    with pytest.raises(InvalidEdge):
        sim.add_edge(make_edge("bad", "A", "C", 10, capacity=0))


def test_connect_and_beacon_edits(make_sim, line_map):
    sim = make_sim(*line_map)
    assert sim.connect("C", "A", base_speed=20.0) == "e-C-A"
    edge = sim.network.edges["e-C-A"]
    assert edge.length == pytest.approx(200.0)
    assert edge.base_travel_time == pytest.approx(10.0)

    beacon = sim.add_beacon(Beacon("b3", 100.0, 60.0))
    assert beacon.mapped_edge_ids == ["bd"]
    assert sim.remove_beacon("b3")
    assert sim.toggle_edge_closure("bd")
    assert sim.network.edges["bd"].closed


def test_load_map_resets_and_maps_beacons(make_sim, line_map):
    sim = make_sim(*line_map)
    sim.spawn_truck("A", "C")
    sim.tick()
    assert sim.network.beacons["b1"].mapped_edge_ids == ["ab"]

    sim.load_map(*line_map)
    assert sim.trucks == {}
    assert sim.time == 0.0
    assert all(e.current_load == 0 for e in sim.network.edges.values())
    assert sim.spawn_truck("A", "C") == "T-1"


def test_load_map_skips_edges_with_missing_endpoints(make_sim, line_map):
    nodes, edges, beacons = line_map
    sim = make_sim(nodes, edges + [make_edge("ax", "A", "X", 50)], beacons)
    assert "ax" not in sim.network.edges
    assert set(sim.network.edges) == {"ab", "bc", "bd", "dc"}
    sim.check_invariants()


def test_load_map_does_not_alias_caller_objects(make_sim, line_map):
    nodes, edges, beacons = line_map
    sim = make_sim(nodes, edges, beacons)
    sim.spawn_truck("A", "C")
    assert edges[0].current_load == 0


def test_clear_simulation_keeps_topology(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=20.0, agent_speed_max=20.0)
    sim.spawn_truck("A", "C")
    for _ in range(3):
        sim.tick()
    assert sim.network.edges["ab"].current_weight > sim.network.edges["ab"].base_travel_time

    sim.clear_simulation()
    assert sim.trucks == {}
    assert sim.get_stats().time == 0.0
    assert set(sim.network.edges) == {"ab", "bc"}
    edge = sim.network.edges["ab"]
    assert edge.current_load == 0
    assert edge.current_weight == pytest.approx(edge.base_travel_time)


def test_delay_against_mean_speed_baseline(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=10.0, agent_speed_max=30.0)
    tid = sim.spawn_truck("A", "C")
    sim.trucks[tid].speed = 10.0
    for _ in range(20):
        sim.tick()
    stats = sim.get_stats()
    assert stats.completed_trips == 1
    # 200 units at the 20 u/s mean would take 10 s
    assert stats.avg_delay == pytest.approx(10.0)


def test_stats_history_is_bounded(make_sim, straight_map):
    sim = make_sim(*straight_map, stats_history_size=2)
    for _ in range(3):
        sim.tick()
    frame = sim.stats_frame()
    assert list(frame["time"]) == [2.0, 3.0]
    assert "completed_trips" in frame.columns


def test_snapshot_is_detached(make_sim, line_map):
    sim = make_sim(*line_map)
    tid = sim.spawn_truck("A", "C")
    snap = sim.snapshot()
    snap.edges[0].current_load = 99
    snap.trucks[0].plan.clear()
    assert sim.network.edges["ab"].current_load == 1
    assert sim.trucks[tid].plan == ["ab", "bc"]
    assert snap.stats.active_trucks == 1


def test_finished_trucks_skip_localization(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=100.0, agent_speed_max=100.0)
    sim.add_beacon(Beacon("b", 0.0, 0.0))
    tid = sim.spawn_truck("A", "C")
    sim.tick()
    truck = sim.trucks[tid]
    sim.tick()
    assert truck.state == FINISHED
    assert tid not in sim.trucks
    assert truck.localization.pending_count == 1


def test_run_advances_requested_ticks(make_sim, straight_map):
    sim = make_sim(*straight_map, agent_speed_min=20.0, agent_speed_max=20.0)
    sim.spawn_truck("A", "C")
    stats = sim.run(12, report_every=4)
    assert sim.ticks == 12
    assert stats.time == pytest.approx(12.0)
    assert stats.completed_trips == 1
