"""Tests for agents and per-user settings.

Tests cover:
- Agent names are unique per owner, not globally
- Agents are owner-only; foreign ids look like missing ones
- Default agent changes go through set_default (one per owner)
- Settings read back as an empty object until saved, then upsert
"""

from uuid import uuid4

import pytest

from murmur.errors import ApiErrorCode, ConflictError, NotFoundError
from murmur.schemas.agents import AgentCreate, AgentUpdate
from murmur.services import agents as agents_service
from murmur.services import user_settings as user_settings_service
from murmur.services.defaults import get_default_agent
from tests.helpers import auth_headers, create_test_user_id, seed_agent

# =============================================================================
# Service
# =============================================================================


class TestCreateAgent:
    def test_create(self, db_session):
        viewer_id = create_test_user_id()

        out = agents_service.create_agent(
            db_session,
            viewer_id,
            AgentCreate(name=" Editor ", system_prompt="Fix grammar.", description="Proofreads"),
        )

        assert out.name == "Editor"
        assert out.system_prompt == "Fix grammar."
        assert out.is_default is False

    def test_duplicate_name_for_same_owner_conflicts(self, db_session):
        viewer_id = create_test_user_id()
        seed_agent(db_session, viewer_id, "Editor")

        with pytest.raises(ConflictError) as exc_info:
            agents_service.create_agent(
                db_session, viewer_id, AgentCreate(name="Editor", system_prompt="x")
            )

        assert exc_info.value.code == ApiErrorCode.E_AGENT_EXISTS

    def test_same_name_for_other_owner_is_fine(self, db_session):
        seed_agent(db_session, create_test_user_id(), "Editor")

        out = agents_service.create_agent(
            db_session, create_test_user_id(), AgentCreate(name="Editor", system_prompt="x")
        )

        assert out.name == "Editor"

    def test_create_as_default_replaces_previous(self, db_session):
        viewer_id = create_test_user_id()
        seed_agent(db_session, viewer_id, "Editor", is_default=True)

        out = agents_service.create_agent(
            db_session,
            viewer_id,
            AgentCreate(name="Coach", system_prompt="Be encouraging.", is_default=True),
        )

        assert out.is_default is True
        assert get_default_agent(db_session, viewer_id).id == out.id


class TestUpdateAgent:
    def test_partial_update(self, db_session):
        viewer_id = create_test_user_id()
        agent = seed_agent(db_session, viewer_id, "Editor", system_prompt="old")

        out = agents_service.update_agent(
            db_session, viewer_id, agent.id, AgentUpdate(system_prompt="new")
        )

        assert out.name == "Editor"
        assert out.system_prompt == "new"

    def test_rename_to_taken_name_conflicts(self, db_session):
        viewer_id = create_test_user_id()
        seed_agent(db_session, viewer_id, "Editor")
        coach = seed_agent(db_session, viewer_id, "Coach")

        with pytest.raises(ConflictError):
            agents_service.update_agent(db_session, viewer_id, coach.id, AgentUpdate(name="Editor"))

    def test_keeping_own_name_is_not_a_conflict(self, db_session):
        viewer_id = create_test_user_id()
        agent = seed_agent(db_session, viewer_id, "Editor")

        out = agents_service.update_agent(
            db_session, viewer_id, agent.id, AgentUpdate(name="Editor", description="d")
        )

        assert out.description == "d"

    def test_update_is_default_true_switches_default(self, db_session):
        viewer_id = create_test_user_id()
        seed_agent(db_session, viewer_id, "Editor", is_default=True)
        coach = seed_agent(db_session, viewer_id, "Coach")

        out = agents_service.update_agent(
            db_session, viewer_id, coach.id, AgentUpdate(is_default=True)
        )

        assert out.is_default is True
        assert get_default_agent(db_session, viewer_id).id == coach.id

    def test_foreign_agent_is_not_found(self, db_session):
        agent = seed_agent(db_session, create_test_user_id())

        with pytest.raises(NotFoundError) as exc_info:
            agents_service.update_agent(
                db_session, create_test_user_id(), agent.id, AgentUpdate(name="Mine")
            )

        assert exc_info.value.code == ApiErrorCode.E_AGENT_NOT_FOUND


class TestDeleteAgent:
    def test_deleting_default_leaves_none(self, db_session):
        viewer_id = create_test_user_id()
        agent = seed_agent(db_session, viewer_id, is_default=True)

        agents_service.delete_agent(db_session, viewer_id, agent.id)

        assert get_default_agent(db_session, viewer_id) is None
        assert agents_service.list_agents(db_session, viewer_id) == []

    def test_foreign_agent_is_not_deleted(self, db_session):
        owner_id = create_test_user_id()
        agent = seed_agent(db_session, owner_id)

        with pytest.raises(NotFoundError):
            agents_service.delete_agent(db_session, create_test_user_id(), agent.id)

        assert len(agents_service.list_agents(db_session, owner_id)) == 1


class TestUserSettings:
    def test_unsaved_settings_are_empty(self, db_session):
        assert user_settings_service.get_user_settings(db_session, create_test_user_id()) == {}

    def test_update_replaces_whole_object(self, db_session):
        viewer_id = create_test_user_id()
        user_settings_service.update_user_settings(
            db_session, viewer_id, {"theme": "dark", "hotkey": "Alt+Space"}
        )

        user_settings_service.update_user_settings(db_session, viewer_id, {"theme": "light"})

        assert user_settings_service.get_user_settings(db_session, viewer_id) == {
            "theme": "light"
        }

    def test_settings_are_per_user(self, db_session):
        alice, bob = create_test_user_id(), create_test_user_id()
        user_settings_service.update_user_settings(db_session, alice, {"theme": "dark"})

        assert user_settings_service.get_user_settings(db_session, bob) == {}


# =============================================================================
# Routes
# =============================================================================


class TestAgentRoutes:
    def test_crud_round(self, auth_client):
        headers = auth_headers(create_test_user_id())

        created = auth_client.post(
            "/agents",
            json={"name": "Editor", "system_prompt": "Fix grammar.", "is_default": True},
            headers=headers,
        )
        assert created.status_code == 201
        agent_id = created.json()["data"]["id"]

        listed = auth_client.get("/agents", headers=headers).json()["data"]
        assert [a["id"] for a in listed] == [agent_id]

        default = auth_client.get("/agents/default", headers=headers).json()["data"]
        assert default["id"] == agent_id

        updated = auth_client.put(
            f"/agents/{agent_id}", json={"name": "Proofreader"}, headers=headers
        )
        assert updated.json()["data"]["name"] == "Proofreader"

        assert auth_client.delete(f"/agents/{agent_id}", headers=headers).status_code == 204
        assert auth_client.get(f"/agents/{agent_id}", headers=headers).status_code == 404

    def test_no_default_returns_null(self, auth_client):
        response = auth_client.get("/agents/default", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 200
        assert response.json() == {"data": None}

    def test_set_default_route(self, auth_client):
        headers = auth_headers(create_test_user_id())
        first = auth_client.post(
            "/agents", json={"name": "A", "system_prompt": "a", "is_default": True}, headers=headers
        ).json()["data"]
        second = auth_client.post(
            "/agents", json={"name": "B", "system_prompt": "b"}, headers=headers
        ).json()["data"]

        response = auth_client.post(f"/agents/{second['id']}/set-default", headers=headers)

        assert response.status_code == 200
        assert response.json()["data"]["is_default"] is True
        first_now = auth_client.get(f"/agents/{first['id']}", headers=headers).json()["data"]
        assert first_now["is_default"] is False

    def test_foreign_agent_returns_404(self, auth_client):
        owner_headers = auth_headers(create_test_user_id())
        agent_id = auth_client.post(
            "/agents", json={"name": "Editor", "system_prompt": "x"}, headers=owner_headers
        ).json()["data"]["id"]

        response = auth_client.post(
            f"/agents/{agent_id}/set-default", headers=auth_headers(create_test_user_id())
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_AGENT_NOT_FOUND"

    def test_duplicate_name_returns_409(self, auth_client):
        headers = auth_headers(create_test_user_id())
        body = {"name": "Editor", "system_prompt": "x"}
        auth_client.post("/agents", json=body, headers=headers)

        response = auth_client.post("/agents", json=body, headers=headers)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_AGENT_EXISTS"

    def test_overlong_prompt_returns_400(self, auth_client):
        response = auth_client.post(
            "/agents",
            json={"name": "Editor", "system_prompt": "x" * 2001},
            headers=auth_headers(create_test_user_id()),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_unknown_agent_returns_404(self, auth_client):
        response = auth_client.get(
            f"/agents/{uuid4()}", headers=auth_headers(create_test_user_id())
        )

        assert response.status_code == 404

    def test_requires_authentication(self, auth_client):
        assert auth_client.get("/agents").status_code == 401


class TestUserSettingsRoutes:
    def test_get_then_put(self, auth_client):
        headers = auth_headers(create_test_user_id())

        assert auth_client.get("/settings", headers=headers).json() == {
            "data": {"settings": {}}
        }

        put = auth_client.put(
            "/settings", json={"settings": {"theme": "dark", "volume": 0.8}}, headers=headers
        )
        assert put.status_code == 200

        assert auth_client.get("/settings", headers=headers).json()["data"]["settings"] == {
            "theme": "dark",
            "volume": 0.8,
        }

    def test_settings_must_be_an_object(self, auth_client):
        response = auth_client.put(
            "/settings", json={"settings": ["dark"]}, headers=auth_headers(create_test_user_id())
        )

        assert response.status_code == 400
