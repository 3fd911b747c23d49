"""
Controller Tests: motion state machine, config surface, scripted drags and
headless simulation.
"""

import sys
import os
import json
import math
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from controller import FramePusherController, MotionState, CONFIG_PARAMS
from physics import PhysicsConfig


def event_types(ctrl):
    return [ev["type"] for ev in ctrl.pending_events]


def run_until_rest(ctrl, max_steps=3000):
    for _ in range(max_steps):
        ctrl.step()
        if ctrl.mode is MotionState.REST:
            return True
    return False


SWEEP = [(300.0, 300.0)] + [(300.0 + 5.0 * i, 300.0) for i in range(1, 61)]


class TestMotionState:

    def test_starts_at_rest(self):
        ctrl = FramePusherController()
        assert ctrl.mode is MotionState.REST
        assert len(ctrl.frames) == 10
        assert (ctrl.handle.x, ctrl.handle.y) == (280.0, 280.0)

    def test_grab_enters_dragging(self):
        ctrl = FramePusherController()
        assert ctrl.pointer_down(300, 300)
        assert ctrl.mode is MotionState.DRAGGING
        assert ctrl.is_dragging()
        assert "drag_start" in event_types(ctrl)

    def test_miss_stays_at_rest(self):
        ctrl = FramePusherController()
        assert not ctrl.pointer_down(10, 10)
        assert ctrl.mode is MotionState.REST

    def test_drag_pushes_chain_on_step(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        assert ctrl.handle.x == 560.0
        ctrl.step()
        assert ctrl.frames[8].x == 500.0
        assert ctrl.frames[0].x == 180.0
        assert [ev["frame"] for ev in ctrl.physics_events] == list(range(8, -1, -1))

    def test_release_enters_settling(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.pointer_up()
        assert ctrl.mode is MotionState.SETTLING
        assert "drag_end" in event_types(ctrl)

    def test_release_without_settling(self):
        ctrl = FramePusherController()
        assert ctrl.toggle_settle() is False
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        ctrl.pointer_up()
        assert ctrl.mode is MotionState.REST
        before = [(f.x, f.y) for f in ctrl.frames]
        ctrl.step()
        assert [(f.x, f.y) for f in ctrl.frames] == before

    def test_settles_back_to_rest(self):
        ctrl = FramePusherController(config=PhysicsConfig(num_frames=3))
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        assert ctrl.frames[0].x == 40.0
        ctrl.pointer_up()

        assert run_until_rest(ctrl)
        assert "settled" in event_types(ctrl)
        assert ctrl.engine.total_overlap(ctrl.frames, 600, 600) <= ctrl.REST_OVERLAP
        assert all(f.vx == 0.0 and f.vy == 0.0 for f in ctrl.frames)

    def test_grab_during_settling_stops_motion(self):
        ctrl = FramePusherController(config=PhysicsConfig(num_frames=3))
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        ctrl.pointer_up()
        for _ in range(5):
            ctrl.step()
        h = ctrl.handle
        assert ctrl.pointer_down(h.x + 20, h.y + 20)
        assert ctrl.mode is MotionState.DRAGGING
        assert all(f.vx == 0.0 and f.vy == 0.0 for f in ctrl.frames)

    def test_tick_count(self):
        ctrl = FramePusherController()
        for _ in range(3):
            ctrl.step()
        assert ctrl.tick_count == 3


class TestConfigSurface:

    def test_physics_param_keeps_positions(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        ctrl.update_config(damping=0.5)
        assert ctrl.engine.config.damping == 0.5
        assert ctrl.frames[0].x == 180.0
        assert "rebuild_frames" not in event_types(ctrl)
        assert "refresh_params" in event_types(ctrl)

    def test_shape_param_rebuilds(self):
        ctrl = FramePusherController()
        ctrl.update_config(num_frames=5)
        assert len(ctrl.frames) == 5
        assert {"type": "rebuild_frames", "count": 5} in ctrl.pending_events
        assert ctrl.drag.target is ctrl.handle

    def test_unknown_field_rejected(self):
        ctrl = FramePusherController()
        with pytest.raises(ValueError):
            ctrl.update_config(mass=2.0)
        assert ctrl.config == PhysicsConfig()

    def test_adjust_param_steps(self):
        ctrl = FramePusherController()
        idx = [row[0] for row in CONFIG_PARAMS].index("damping")
        assert ctrl.adjust_param(idx, +1) == pytest.approx(0.91)
        assert ctrl.adjust_param(idx, -1, fine=True) == pytest.approx(0.909)

    def test_adjust_param_clamps(self):
        ctrl = FramePusherController()
        idx = [row[0] for row in CONFIG_PARAMS].index("damping")
        ctrl.update_config(damping=0.1)
        assert ctrl.adjust_param(idx, -1) == pytest.approx(0.1)

    def test_adjust_handle_size_rebuilds(self):
        ctrl = FramePusherController()
        idx = [row[0] for row in CONFIG_PARAMS].index("handle_size")
        assert ctrl.adjust_param(idx, +1) == 42.0
        assert ctrl.handle.width == 42.0

    def test_fine_step_on_integer_field_moves_whole_step(self):
        ctrl = FramePusherController()
        idx = [row[0] for row in CONFIG_PARAMS].index("num_frames")
        assert ctrl.adjust_param(idx, -1, fine=True) == 9
        assert len(ctrl.frames) == 9

    def test_live_param_change_keeps_contact_history(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        assert ctrl.physics_events
        ctrl.update_config(spring_strength=0.5)
        ctrl.pointer_move(600, 600)
        ctrl.step()
        assert ctrl.frames[0].y == 180.0
        assert ctrl.physics_events == []

    def test_frame_count_capped_by_canvas(self):
        ctrl = FramePusherController()
        ctrl.update_config(num_frames=50)
        assert ctrl.config.num_frames == 50
        assert len(ctrl.frames) == 10

    def test_reset_to_defaults(self):
        ctrl = FramePusherController()
        ctrl.update_config(num_frames=4, damping=0.3)
        ctrl.reset_to_defaults()
        assert ctrl.config == PhysicsConfig()
        assert len(ctrl.frames) == 10

    def test_params_data(self):
        data = FramePusherController().get_params_data()
        assert [d["attr"] for d in data] == [row[0] for row in CONFIG_PARAMS]
        assert data[0]["value"] == 10


class TestLifecycle:

    def test_resize_rebuilds(self):
        ctrl = FramePusherController()
        ctrl.resize(300, 300)
        assert (ctrl.canvas_width, ctrl.canvas_height) == (300.0, 300.0)
        assert len(ctrl.frames) == 5
        assert (ctrl.drag.canvas_width, ctrl.drag.canvas_height) == (300.0, 300.0)

    def test_resize_drops_drag(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.resize(500, 500)
        assert not ctrl.is_dragging()
        assert ctrl.mode is MotionState.REST

    @pytest.mark.parametrize("size", [(float("nan"), 500.0), (500.0, float("inf")), (0.0, 500.0)])
    def test_resize_rejects_bad_size(self, size):
        ctrl = FramePusherController()
        before = ctrl.store.snapshot()
        with pytest.raises(ValueError):
            ctrl.resize(*size)
        assert ctrl.store.snapshot() == before
        assert (ctrl.canvas_width, ctrl.canvas_height) == (600.0, 600.0)

    def test_reset_restores_layout(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        ctrl.reset()
        assert ctrl.handle.x == 280.0
        assert ctrl.frames[0].x == 0.0
        assert ctrl.mode is MotionState.REST


class TestScriptedDrag:

    def test_preset_drives_drag(self):
        ctrl = FramePusherController()
        ctrl.play_preset("1")
        for _ in range(61):
            ctrl.step()
        assert ctrl.is_dragging()
        assert ctrl.handle.x == 560.0
        ctrl.step()
        assert not ctrl.is_dragging()
        assert ctrl.mode is MotionState.SETTLING

    def test_preset_by_name(self):
        ctrl = FramePusherController()
        ctrl.play_preset("circle")
        ctrl.step()
        assert ctrl.is_dragging()

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            FramePusherController().play_preset("zigzag")

    def test_empty_path(self):
        with pytest.raises(ValueError):
            FramePusherController().play_path([])

    def test_path_missing_handle_is_dropped(self):
        ctrl = FramePusherController()
        ctrl.play_path([(5.0, 5.0), (10.0, 10.0)])
        ctrl.step()
        assert ctrl.mode is MotionState.REST
        assert not ctrl._script_active

    def test_user_grab_cancels_script(self):
        ctrl = FramePusherController()
        ctrl.play_preset("sweep")
        ctrl.step()
        ctrl.pointer_up()
        ctrl.pointer_down(ctrl.handle.x + 1, ctrl.handle.y + 1)
        assert not ctrl._script_active


class TestCommands:

    def test_bad_json(self):
        ctrl = FramePusherController()
        ctrl.execute_command("{not json")
        assert ctrl.status_msg.startswith("JSON error")

    def test_unknown_cmd(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "fly"}')
        assert "Unknown cmd" in ctrl.status_msg

    def test_set_params(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "set", "params": {"spring_strength": 0.4}}')
        assert ctrl.config.spring_strength == 0.4

    def test_set_bad_params(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "set", "params": {"bogus": 1}}')
        assert ctrl.status_msg.startswith("params:")
        assert ctrl.config == PhysicsConfig()

    @pytest.mark.parametrize("params", [
        '{"gap": NaN}',
        '{"gap": "inf"}',
        '{"frame_thickness": Infinity}',
        '{"damping": "-inf"}',
        '{"gap": -20}',
        '{"num_frames": 100000000}',
        '{"handle_size": 500}',
        '{"spring_strength": 0}',
    ])
    def test_set_rejects_non_finite_and_out_of_range(self, params):
        ctrl = FramePusherController()
        before = ctrl.store.snapshot()
        ctrl.execute_command('{"cmd": "set", "params": %s}' % params)

        assert ctrl.status_msg.startswith("params:")
        assert ctrl.config == PhysicsConfig()
        assert ctrl.engine.config == PhysicsConfig()
        assert ctrl.store.snapshot() == before
        assert "refresh_params" not in event_types(ctrl)

        ctrl.reset()
        ctrl.resize(500, 500)
        assert len(ctrl.frames) == 9
        assert all(math.isfinite(f.x) and math.isfinite(f.width) for f in ctrl.frames)

    def test_set_frames_starts_settling(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "set", "frames": {"0": {"pos": [-20, 0], "vel": [1, 0]}}}')
        assert (ctrl.frames[0].x, ctrl.frames[0].vx) == (-20.0, 1.0)
        assert ctrl.mode is MotionState.SETTLING

    def test_set_bad_frames(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "set", "frames": {"zero": {"pos": [1, 1]}}}')
        assert ctrl.status_msg.startswith("set:")
        assert ctrl.frames[0].x == 0.0

    def test_state_json_round_trip(self):
        ctrl = FramePusherController()
        ctrl.pointer_down(300, 300)
        ctrl.pointer_move(600, 300)
        ctrl.step()
        ctrl.pointer_up()
        saved = ctrl.get_state_json()
        expected = [(f.x, f.y) for f in ctrl.frames]
        ctrl.reset()
        ctrl.execute_command(saved)
        assert [(f.x, f.y) for f in ctrl.frames] == expected

    def test_drag_preset(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "drag", "preset": "3"}')
        ctrl.step()
        assert ctrl.is_dragging()

    def test_drag_simulate(self):
        ctrl = FramePusherController()
        ctrl.execute_command(json.dumps({"cmd": "drag", "simulate": True, "path": SWEEP}))
        results = [ev for ev in ctrl.pending_events if ev["type"] == "simulation_result"]
        assert len(results) == 1
        assert ctrl.handle.x == 280.0

    def test_drag_bad_path(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "drag", "path": []}')
        assert ctrl.status_msg.startswith("drag:")

    def test_reset_cmd(self):
        ctrl = FramePusherController()
        ctrl.execute_command('{"cmd": "reset"}')
        assert "rebuild_frames" in event_types(ctrl)


class TestSimulateDrag:

    def test_result_matches_live_drag(self):
        ctrl = FramePusherController()
        result = ctrl.simulate_drag(SWEEP, settle=False)
        assert result["frames"][-1]["x"] == 560.0
        assert result["frames"][0]["x"] == 180.0
        assert result["drag_ticks"] == 60
        assert result["settle_ticks"] == 0
        assert result["contacts"] >= 9

    def test_non_destructive(self):
        ctrl = FramePusherController()
        before = ctrl.get_state()
        ctrl.simulate_drag(SWEEP)
        assert ctrl.get_state() == before

    def test_deterministic(self):
        res1 = FramePusherController().simulate_drag(SWEEP)
        res2 = FramePusherController().simulate_drag(SWEEP)
        assert res1 == res2

    def test_settles(self):
        ctrl = FramePusherController(config=PhysicsConfig(num_frames=3))
        result = ctrl.simulate_drag(SWEEP)
        assert result["settled"]
        assert result["overlap"] <= ctrl.REST_OVERLAP
        assert 0 < result["settle_ticks"] < ctrl.MAX_SETTLE_TICKS

    def test_empty_path(self):
        with pytest.raises(ValueError):
            FramePusherController().simulate_drag([])

    def test_must_start_on_handle(self):
        with pytest.raises(ValueError):
            FramePusherController().simulate_drag([(0.0, 0.0), (10.0, 10.0)])


class TestStateExport:

    def test_get_state(self):
        state = FramePusherController().get_state()
        assert set(state) == {"frames", "config", "mode", "is_dragging", "canvas", "tick"}
        assert state["mode"] == "rest"
        assert state["canvas"] == [600.0, 600.0]
