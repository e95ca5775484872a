def setup_trip(client, headers):
    trip_id = client.post("/api/trips", json={"startedAt": 0}, headers=headers).json()["id"]
    for offset, label in [(5, "phone"), (20, "yawn"), (40, "Drowsy eye")]:
        client.post(
            f"/api/webhook/detections?trip_id={trip_id}",
            data={"offset": str(offset), "prediction": label},
            files={"image": ("frame.jpg", b"img", "image/jpeg")},
        )
    return trip_id


def test_report_before_completion_has_no_score(client, headers):
    trip_id = setup_trip(client, headers)
    report = client.get(f"/api/trips/{trip_id}/report", headers=headers).json()
    assert report["score"] is None
    assert report["durationMs"] is None
    assert [c["eventType"] for c in report["summary"]] == ["Phone Usage", "Drowsiness"]
    assert [c["count"] for c in report["summary"]] == [1, 2]
    assert [e["offset"] for e in report["events"]] == [5, 20, 40]


def test_report_after_completion(client, headers):
    trip_id = setup_trip(client, headers)
    client.patch(f"/api/trips/{trip_id}", json={"status": "completed", "endedAt": 60 * 60 * 1000}, headers=headers)

    report = client.get(f"/api/trips/{trip_id}/report", headers=headers).json()
    # 15 + 8 + 8 penalty points over one hour.
    assert report["score"]["score"] == 69
    assert report["score"]["rating"] == "Below Average"
    assert report["durationMs"] == 60 * 60 * 1000
    assert report["trip"]["score"] == 69


def test_report_pdf(client, headers):
    trip_id = setup_trip(client, headers)
    response = client.get(f"/api/trips/{trip_id}/report.pdf", headers=headers)
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")


def test_report_is_owner_only(client, headers):
    from conftest import auth_headers

    trip_id = setup_trip(client, headers)
    assert client.get(f"/api/trips/{trip_id}/report", headers=auth_headers("someone-else")).status_code == 404
