from conftest import auth_headers, profile_for, register_user, sign_in
from edumanage.core.exceptions import ScheduleWriteError
from edumanage.models.class_session import ClassSession
from edumanage.services.repositories import SqlScheduleStore


def signed_in_as(client, db, email, role):
    register_user(client, email)
    profile_for(db, email).role = role
    db.commit()
    return sign_in(client, email).json()["access_token"]


def seed_classes(db):
    first = ClassSession(
        title="Algorithms",
        start_time="09:00",
        end_time="10:00",
        classroom_id="room-101",
        day_of_week="Monday",
    )
    second = ClassSession(
        title="Operating Systems",
        start_time="13:00",
        end_time="14:30",
        classroom_id="room-204",
        day_of_week="Thursday",
    )
    db.add_all([first, second])
    db.commit()
    return first.id, second.id


def slot(db, class_id):
    db.expire_all()
    row = db.get(ClassSession, class_id)
    return row.start_time, row.end_time, row.classroom_id, row.day_of_week


def test_admin_swaps_two_classes(client, db):
    token = signed_in_as(client, db, "admin@example.com", "admin")
    first_id, second_id = seed_classes(db)

    response = client.post(
        "/api/classes/swap",
        json={"class_a_id": first_id, "class_b_id": second_id},
        headers=auth_headers(token),
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["class_a"]["room_id"] == "room-204"
    assert payload["class_b"]["day_of_week"] == "Monday"
    assert slot(db, first_id) == ("13:00", "14:30", "room-204", "Thursday")
    assert slot(db, second_id) == ("09:00", "10:00", "room-101", "Monday")


def test_instructor_may_swap(client, db):
    token = signed_in_as(client, db, "instructor@example.com", "instructor")
    first_id, second_id = seed_classes(db)

    response = client.post(
        "/api/classes/swap",
        json={"class_a_id": first_id, "class_b_id": second_id},
        headers=auth_headers(token),
    )

    assert response.status_code == 200


def test_student_cannot_swap(client, db):
    token = signed_in_as(client, db, "student@example.com", "student")
    first_id, second_id = seed_classes(db)

    response = client.post(
        "/api/classes/swap",
        json={"class_a_id": first_id, "class_b_id": second_id},
        headers=auth_headers(token),
    )

    assert response.status_code == 403
    assert slot(db, first_id) == ("09:00", "10:00", "room-101", "Monday")


def test_swapping_a_class_with_itself_is_rejected(client, db):
    token = signed_in_as(client, db, "same@example.com", "admin")
    first_id, _ = seed_classes(db)

    same = client.post(
        "/api/classes/swap",
        json={"class_a_id": first_id, "class_b_id": first_id},
        headers=auth_headers(token),
    )
    missing = client.post(
        "/api/classes/swap",
        json={"class_a_id": first_id, "class_b_id": "no-such-class"},
        headers=auth_headers(token),
    )

    assert same.status_code == 400
    assert missing.status_code == 400
    assert slot(db, first_id) == ("09:00", "10:00", "room-101", "Monday")


def test_failed_second_write_rolls_back_first_class(client, db, monkeypatch):
    token = signed_in_as(client, db, "rollback@example.com", "admin")
    first_id, second_id = seed_classes(db)
    original_update = SqlScheduleStore.update
    calls = []

    def flaky_update(self, record_id, values):
        calls.append(record_id)
        if len(calls) == 2:
            raise ScheduleWriteError(record_id)
        return original_update(self, record_id, values)

    monkeypatch.setattr(SqlScheduleStore, "update", flaky_update)

    response = client.post(
        "/api/classes/swap",
        json={"class_a_id": first_id, "class_b_id": second_id},
        headers=auth_headers(token),
    )

    assert response.status_code == 409
    assert response.json()["details"] == {"class_a_id": first_id, "class_b_id": second_id}
    assert calls == [first_id, second_id, first_id]
    assert slot(db, first_id) == ("09:00", "10:00", "room-101", "Monday")
    assert slot(db, second_id) == ("13:00", "14:30", "room-204", "Thursday")
