import pytest

from hass_companion.models import Entity
from hass_companion.renderer import NEXT_ACTIONS, EntityListRenderer, next_action, render_rows


def entities(*entity_ids):
    return [Entity(id=entity_id, state="off") for entity_id in entity_ids]


class TestRenderRows:
    """Test the category label rule for rendered rows."""

    def test_label_only_on_first_row_of_category(self):
        rows = render_rows(entities("light.a", "light.b", "switch.c"))

        assert [row.category for row in rows] == ["light", None, "switch"]

    def test_label_rule_ignores_adjacency(self):
        rows = render_rows(entities("light.a", "switch.c", "light.b", "switch.d"))

        assert [row.category for row in rows] == ["light", "switch", None, None]

    def test_rows_carry_entity_fields(self):
        rows = render_rows([Entity(id="cover.blinds", name="Blinds", state="open")])

        assert rows[0].index == 0
        assert rows[0].entity_id == "cover.blinds"
        assert rows[0].name == "Blinds"
        assert rows[0].state == "open"
        assert not rows[0].revealed

    def test_empty_list(self):
        assert render_rows([]) == []


class TestEntityListRenderer:
    """Test row reveal handling and change requests."""

    def test_tap_reveals_row(self):
        renderer = EntityListRenderer()
        renderer.render(entities("light.a", "light.b"))

        row = renderer.tap(1)

        assert row.entity_id == "light.b"
        assert [row.revealed for row in renderer.rows] == [False, True]

    def test_reveal_survives_rerender(self):
        renderer = EntityListRenderer()
        renderer.render(entities("light.a", "light.b"))
        renderer.tap(0)

        renderer.render(entities("switch.z", "light.a"))

        assert [row.revealed for row in renderer.rows] == [False, True]

    @pytest.mark.parametrize("index", [-1, 2])
    def test_tap_out_of_range(self, index):
        renderer = EntityListRenderer()
        renderer.render(entities("light.a", "light.b"))

        assert renderer.tap(index) is None

    def test_reset(self):
        renderer = EntityListRenderer()
        renderer.render(entities("light.a"))
        renderer.tap(0)

        renderer.reset()

        assert renderer.rows == []
        assert not renderer.render(entities("light.a"))[0].revealed

    def test_format_groups_under_labels(self):
        renderer = EntityListRenderer()
        renderer.render([
            Entity(id="light.a", name="Lamp", state="on"),
            Entity(id="light.b", name="Desk", state="off"),
            Entity(id="switch.c", name="Pump", state="off"),
        ])

        assert renderer.format() == "[light]\n  Lamp: on\n  Desk: off\n[switch]\n  Pump: off"

    def test_change_request(self):
        renderer = EntityListRenderer()
        request = renderer.change_request(Entity(id="switch.c", state="on"))

        assert request.model_dump() == {"key": "change", "id": "switch.c", "action": "turn_off"}


class TestNextAction:
    """Test mapping displayed states to the action that flips them."""

    @pytest.mark.parametrize("state,action", sorted(NEXT_ACTIONS.items()))
    def test_known_states(self, state, action):
        assert next_action(Entity(id="cover.x", state=state)) == action

    def test_unknown_state_defaults_to_turn_on(self):
        assert next_action(Entity(id="light.x", state="unavailable")) == "turn_on"

    def test_executable_uses_default(self):
        assert next_action(Entity(id="button.bell", state="exe")) == "turn_on"
