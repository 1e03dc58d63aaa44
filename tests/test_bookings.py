"""Integration tests for the booking endpoints.

Each test gets its own SQLite database seeded with the default halls and
slot catalog (morning 08-12, afternoon 13-17, night 18-22, Asia/Bahrain).
"""


def create(client, payload) -> int:
    response = client.post("/bookings", json=payload)
    assert response.status_code == 201, response.json()
    return response.json()["booking_id"]


def occurrences_of(client, booking_id) -> list:
    response = client.get(f"/bookings/{booking_id}")
    assert response.status_code == 200
    return response.json()["occurrences"]


class TestReferenceData:
    def test_halls_are_seeded(self, client):
        response = client.get("/halls")

        assert response.status_code == 200
        assert [h["name"] for h in response.json()] == ["Hall 1", "Hall 2", "Hall 3"]

    def test_slot_catalog(self, client):
        response = client.get("/time-slots")

        assert [s["code"] for s in response.json()] == ["morning", "afternoon", "night"]
        assert response.json()[0]["start_time"] == "08:00:00"


class TestCreate:
    def test_create_expands_occurrences(self, client, make_booking):
        booking_id = create(client, make_booking(pre_days=1))

        detail = client.get(f"/bookings/{booking_id}").json()
        assert len(detail["occurrences"]) == 4
        assert detail["booking"]["created_by"] == "user-1"
        assert detail["booking"]["status"] == "hold"
        assert detail["hall_ids"] == [1]
        assert detail["slot_ids"] == [3]
        kinds = sorted(o["kind"] for o in detail["occurrences"])
        assert kinds == ["event", "prep", "prep", "prep"]

    def test_payment_defaults_currency(self, client, make_booking):
        booking_id = create(client, make_booking(payment_amount="120.500"))

        booking = client.get(f"/bookings/{booking_id}").json()["booking"]
        assert booking["currency"] == "BHD"

    def test_payment_status(self, client, make_booking):
        default_id = create(client, make_booking(title="Default"))
        deposit_id = create(client, make_booking(title="Deposit", hall_ids=[2], payment_status="deposit"))

        assert client.get(f"/bookings/{default_id}").json()["booking"]["payment_status"] == "unpaid"
        assert client.get(f"/bookings/{deposit_id}").json()["booking"]["payment_status"] == "deposit"
        response = client.post("/bookings", json=make_booking(hall_ids=[3], payment_status="refunded"))
        assert response.status_code == 400

    def test_overlap_on_same_hall_is_rejected(self, client, make_booking):
        create(client, make_booking(title="First"))

        response = client.post("/bookings", json=make_booking(title="Second", pre_days=1))

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "CONFLICT"
        assert body["details"]["conflicts"][0]["booking_title"] == "First"
        assert [b["title"] for b in client.get("/bookings").json()] == ["First"]

    def test_same_window_on_other_hall_is_allowed(self, client, make_booking):
        create(client, make_booking(hall_ids=[1]))
        create(client, make_booking(hall_ids=[2]))

        assert len(client.get("/bookings").json()) == 2

    def test_adjacent_slots_do_not_conflict(self, client, make_booking):
        create(client, make_booking(event_slot_codes=["morning"]))
        create(client, make_booking(event_slot_codes=["afternoon"]))

    def test_conflict_on_one_hall_rejects_all_halls(self, client, make_booking):
        create(client, make_booking(hall_ids=[2]))

        response = client.post("/bookings", json=make_booking(hall_ids=[1, 2]))

        assert response.status_code == 409
        hall_1 = client.get("/occurrences", params={"start": "2024-01-10", "end": "2024-01-11", "hall_id": 1})
        assert hall_1.json() == []

    def test_requires_actor(self, anon_client, make_booking):
        response = anon_client.post("/bookings", json=make_booking())

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"

    def test_blank_title_is_validation_error(self, client, make_booking):
        response = client.post("/bookings", json=make_booking(title="   "))

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION"

    def test_days_out_of_range(self, client, make_booking):
        response = client.post("/bookings", json=make_booking(event_days=31))

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION"

    def test_field_aliases_are_rejected(self, client, make_booking):
        payload = make_booking()
        payload["days"] = payload.pop("event_days")

        response = client.post("/bookings", json=payload)

        assert response.status_code == 400

    def test_unknown_hall(self, client, make_booking):
        response = client.post("/bookings", json=make_booking(hall_ids=[99]))

        assert response.status_code == 400
        assert response.json()["error"] == "LOOKUP_FAILED"

    def test_unknown_slot_codes(self, client, make_booking):
        response = client.post("/bookings", json=make_booking(event_slot_codes=["brunch"]))

        assert response.status_code == 400
        assert response.json()["error"] == "LOOKUP_FAILED"
        assert client.get("/bookings").json() == []


class TestUpdate:
    def test_partial_update_keeps_other_fields(self, client, make_booking):
        booking_id = create(client, make_booking(client_name="Ali", notes="VIP"))

        response = client.patch(f"/bookings/{booking_id}", json={"notes": None, "title": "Renamed"})

        assert response.status_code == 200
        booking = client.get(f"/bookings/{booking_id}").json()["booking"]
        assert booking["title"] == "Renamed"
        assert booking["client_name"] == "Ali"
        assert booking["notes"] is None
        assert booking["event_slot_codes"] == ["night"]

    def test_reschedule_replaces_occurrences(self, client, make_booking):
        booking_id = create(client, make_booking())

        client.patch(f"/bookings/{booking_id}", json={"event_slot_codes": ["morning", "afternoon"], "post_days": 1})

        occurrences = occurrences_of(client, booking_id)
        assert len(occurrences) == 2 + 3
        assert sorted({o["slot_id"] for o in occurrences if o["kind"] == "event"}) == [1, 2]

    def test_booking_can_be_moved_over_its_own_window(self, client, make_booking):
        booking_id = create(client, make_booking())

        response = client.patch(f"/bookings/{booking_id}", json={"pre_days": 1})

        assert response.status_code == 200
        assert len(occurrences_of(client, booking_id)) == 4

    def test_conflicting_update_leaves_state_untouched(self, client, make_booking):
        create(client, make_booking(title="Other", event_start_date="2024-01-12"))
        booking_id = create(client, make_booking(title="Mine"))
        before = client.get(f"/bookings/{booking_id}").json()

        response = client.patch(
            f"/bookings/{booking_id}",
            json={"title": "Mine v2", "post_days": 2},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"
        after = client.get(f"/bookings/{booking_id}").json()
        assert after == before

    def test_clearing_amount_clears_currency(self, client, make_booking):
        booking_id = create(client, make_booking(payment_amount="50.000"))

        response = client.patch(f"/bookings/{booking_id}", json={"payment_amount": None})

        assert response.status_code == 200
        booking = client.get(f"/bookings/{booking_id}").json()["booking"]
        assert booking["payment_amount"] is None
        assert booking["currency"] is None

    def test_explicit_currency_survives_cleared_amount(self, client, make_booking):
        booking_id = create(client, make_booking(payment_amount="50.000"))

        client.patch(f"/bookings/{booking_id}", json={"payment_amount": None, "currency": "usd"})

        booking = client.get(f"/bookings/{booking_id}").json()["booking"]
        assert booking["currency"] == "USD"

    def test_payment_status_update(self, client, make_booking):
        booking_id = create(client, make_booking())

        response = client.patch(f"/bookings/{booking_id}", json={"payment_status": "paid"})

        assert response.status_code == 200
        assert client.get(f"/bookings/{booking_id}").json()["booking"]["payment_status"] == "paid"
        response = client.patch(f"/bookings/{booking_id}", json={"payment_status": None})
        assert response.status_code == 400

    def test_null_for_required_field(self, client, make_booking):
        booking_id = create(client, make_booking())

        response = client.patch(f"/bookings/{booking_id}", json={"hall_ids": None})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION"

    def test_missing_booking(self, client):
        response = client.patch("/bookings/404", json={"title": "x"})

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


class TestStatus:
    def test_cancelling_frees_the_hall(self, client, make_booking):
        booking_id = create(client, make_booking(title="Cancelled later"))

        response = client.post(f"/bookings/{booking_id}/status", json={"status": "cancelled"})
        assert response.status_code == 200

        create(client, make_booking(title="Rebooked"))

    def test_cancelled_is_terminal(self, client, make_booking):
        booking_id = create(client, make_booking())
        client.post(f"/bookings/{booking_id}/status", json={"status": "cancelled"})

        response = client.post(f"/bookings/{booking_id}/status", json={"status": "confirmed"})

        assert response.status_code == 400
        assert response.json()["details"]["from"] == "cancelled"

    def test_confirmed_cannot_go_back_to_hold(self, client, make_booking):
        booking_id = create(client, make_booking(status="confirmed"))

        response = client.patch(f"/bookings/{booking_id}", json={"status": "hold"})

        assert response.status_code == 400

    def test_cannot_create_cancelled(self, client, make_booking):
        response = client.post("/bookings", json=make_booking(status="cancelled"))

        assert response.status_code == 400


class TestDelete:
    def test_delete_removes_only_its_occurrences(self, client, make_booking):
        keep = create(client, make_booking(hall_ids=[2]))
        gone = create(client, make_booking(hall_ids=[1], pre_days=2))

        response = client.delete(f"/bookings/{gone}")

        assert response.status_code == 200
        assert client.get(f"/bookings/{gone}").status_code == 404
        remaining = client.get("/occurrences", params={"start": "2024-01-01", "end": "2024-02-01"}).json()
        assert {o["booking_id"] for o in remaining} == {keep}
        assert len(remaining) == 1

    def test_delete_frees_the_hall(self, client, make_booking):
        booking_id = create(client, make_booking())
        client.delete(f"/bookings/{booking_id}")

        create(client, make_booking())

    def test_delete_missing(self, client):
        assert client.delete("/bookings/12345").status_code == 404

    def test_delete_requires_actor(self, client, anon_client, make_booking):
        booking_id = create(client, make_booking())

        assert anon_client.delete(f"/bookings/{booking_id}").status_code == 401


class TestReads:
    def test_preview_does_not_store(self, client, make_booking):
        create(client, make_booking(title="Existing"))
        schedule = {
            "event_start_date": "2024-01-11",
            "event_days": 1,
            "pre_days": 1,
            "hall_ids": [1],
            "event_slot_codes": ["morning"],
        }

        response = client.post("/bookings/preview", json=schedule)

        assert response.status_code == 200
        body = response.json()
        assert len(body["occurrences"]) == 4
        assert [c["booking_title"] for c in body["conflicts"]] == ["Existing"]
        assert len(client.get("/bookings").json()) == 1

    def test_list_filters_by_date_and_hall(self, client, make_booking):
        create(client, make_booking(title="Jan 10 hall 1"))
        create(client, make_booking(title="Jan 20 hall 2", event_start_date="2024-01-20", hall_ids=[2]))

        by_day = client.get("/bookings", params={"from": "2024-01-10"}).json()
        by_hall = client.get("/bookings", params={"hall_id": 2}).json()

        assert [b["title"] for b in by_day] == ["Jan 10 hall 1"]
        assert [b["title"] for b in by_hall] == ["Jan 20 hall 2"]

    def test_cancelled_hidden_from_calendar_by_default(self, client, make_booking):
        booking_id = create(client, make_booking())
        client.post(f"/bookings/{booking_id}/status", json={"status": "cancelled"})
        params = {"start": "2024-01-10", "end": "2024-01-11"}

        assert client.get("/occurrences", params=params).json() == []
        shown = client.get("/occurrences", params={**params, "include_cancelled": True}).json()
        assert [o["status"] for o in shown] == ["cancelled"]

    def test_dashboard_grid(self, client, make_booking):
        booking_id = create(client, make_booking(title="Evening", pre_days=1))

        grid = client.get("/dashboard-grid", params={"target_date": "2024-01-10"}).json()

        hall_1 = grid[0]
        assert hall_1["hall_id"] == 1
        cells = {c["slot_code"]: c for c in hall_1["schedule"]}
        assert cells["night"]["status"] == "occupied"
        assert cells["night"]["booking_id"] == booking_id
        assert cells["night"]["kind"] == "event"
        assert cells["morning"]["status"] == "available"
        assert all(c["status"] == "available" for c in grid[1]["schedule"])

        prep_day = client.get("/dashboard-grid", params={"target_date": "2024-01-09"}).json()
        assert {c["kind"] for c in prep_day[0]["schedule"]} == {"prep"}

    def test_invalid_booking_id(self, client):
        response = client.get("/bookings/abc")

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION"
