import uuid

import anyio
import pytest


async def _root(client):
    resp = await client.post(
        "/v1/sessions",
        json={"title": "Branches", "initial_choice": {"career_change": "software developer"}},
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return body["session"]["session_id"], body["root_node"]["node_id"]


async def _wait_for_job(client, job_id, attempts=100):
    for _ in range(attempts):
        resp = await client.get(f"/v1/jobs/{job_id}")
        assert resp.status_code == 200
        if resp.json()["status"] in ("succeeded", "failed"):
            return resp.json()
        await anyio.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


@pytest.mark.anyio
async def test_create_child_node(client):
    session_id, root_id = await _root(client)

    resp = await client.post(
        f"/v1/sessions/{session_id}/nodes",
        json={"parent_node_id": root_id, "choice": {"lifestyle_change": "Digital nomad"}},
    )
    assert resp.status_code == 201
    node = resp.json()["node"]
    assert node["depth"] == 1
    assert node["parent_node_id"] == root_id
    assert node["status"] == "completed"
    assert node["metrics"]["occupation"]["category"] == "Technology"

    resp = await client.get(f"/v1/nodes/{root_id}")
    assert resp.json()["child_node_ids"] == [node["node_id"]]


@pytest.mark.anyio
async def test_background_generation_via_job(client):
    session_id, root_id = await _root(client)

    resp = await client.post(
        f"/v1/sessions/{session_id}/nodes",
        json={"parent_node_id": root_id, "choice": {"career_change": "teacher"}, "run_in_background": True},
    )
    assert resp.status_code == 202
    body = resp.json()
    assert body["node"]["status"] == "generating"
    assert body["node"]["metrics"]["city"]["name"] == "Processing..."

    job = await _wait_for_job(client, body["job_id"])
    assert job["status"] == "succeeded"
    assert job["result"] == {"node_id": body["node"]["node_id"], "status": "completed"}
    assert job["node_id"] == body["node"]["node_id"]

    resp = await client.get(f"/v1/nodes/{body['node']['node_id']}")
    assert resp.json()["status"] == "completed"


@pytest.mark.anyio
async def test_background_session_creation(client):
    resp = await client.post(
        "/v1/sessions",
        json={"title": "Later", "initial_choice": {"career_change": "chef"}, "run_in_background": True},
    )
    assert resp.status_code == 202
    body = resp.json()
    assert body["root_node"]["status"] == "generating"

    job = await _wait_for_job(client, body["job_id"])
    assert job["status"] == "succeeded"


@pytest.mark.anyio
async def test_export_node(client):
    session_id, root_id = await _root(client)
    child = (
        await client.post(
            f"/v1/sessions/{session_id}/nodes",
            json={"parent_node_id": root_id, "choice": {"career_change": "writer"}},
        )
    ).json()["node"]

    resp = await client.get(f"/v1/nodes/{child['node_id']}/export")
    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == f'attachment; filename="life-node-{child["node_id"]}.json"'
    document = resp.json()
    assert document["session_title"] == "Branches"
    assert [entry["node_id"] for entry in document["ancestry"]] == [root_id, child["node_id"]]
    assert sorted(entry["action"] for entry in document["history"]) == ["create", "finalize"]


@pytest.mark.anyio
async def test_node_errors_map_to_status_codes(client):
    session_id, root_id = await _root(client)

    resp = await client.get(f"/v1/nodes/{uuid.uuid4()}")
    assert resp.status_code == 404

    resp = await client.post(
        f"/v1/sessions/{session_id}/nodes",
        json={"parent_node_id": str(uuid.uuid4()), "choice": {"career_change": "writer"}},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid parent node"

    resp = await client.post(f"/v1/sessions/{uuid.uuid4()}/nodes", json={"choice": {"career_change": "writer"}})
    assert resp.status_code == 404

    resp = await client.get(f"/v1/jobs/{uuid.uuid4()}")
    assert resp.status_code == 404
