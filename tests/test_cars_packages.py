"""Tests for the car fleet and lesson packages."""


def test_car_plate_is_uppercased_and_unique(admin_client):
    r = admin_client.post("/api/cars", json={"license_plate": " ab-123-c ", "brand": "Volkswagen", "model": "Golf", "year": 2021})
    assert r.status_code == 201
    assert r.json["car"]["license_plate"] == "AB-123-C"

    r = admin_client.post("/api/cars", json={"license_plate": "AB-123-C", "brand": "Opel", "model": "Corsa"})
    assert r.status_code == 409


def test_car_requires_brand_and_model(admin_client):
    r = admin_client.post("/api/cars", json={"license_plate": "ZZ-999-Z"})
    assert r.status_code == 400
    assert r.json["details"] == ["Brand is required.", "Model is required."]


def test_car_update_and_delete(admin_client, instructor_client):
    car = admin_client.post("/api/cars", json={"license_plate": "GH-456-J", "brand": "Kia", "model": "Picanto"}).json["car"]
    r = admin_client.patch(f"/api/cars/{car['id']}", json={"is_available": False})
    assert r.json["car"]["is_available"] is False

    plates = [c["license_plate"] for c in instructor_client.get("/api/cars").json["cars"]]
    assert plates == ["GH-456-J"]
    assert instructor_client.get("/api/cars?available=1").json["cars"] == []
    assert instructor_client.delete(f"/api/cars/{car['id']}").status_code == 403

    assert admin_client.delete(f"/api/cars/{car['id']}").status_code == 200
    assert admin_client.get("/api/cars").json["cars"] == []


def test_packages_ordered_by_price(admin_client, student_client):
    admin_client.post("/api/packages", json={"name": "Twintig", "lessons_count": 20, "price": "1100"})
    admin_client.post("/api/packages", json={"name": "Vijf", "lessons_count": 5, "price": "275.50"})
    admin_client.post("/api/packages", json={"name": "Tien", "lessons_count": 10, "price": "560", "is_active": False})

    names = [p["name"] for p in student_client.get("/api/packages").json["packages"]]
    assert names == ["Vijf", "Twintig"]

    # ?all=1 is only honoured for admins.
    assert len(student_client.get("/api/packages?all=1").json["packages"]) == 2
    assert [p["name"] for p in admin_client.get("/api/packages?all=1").json["packages"]] == ["Vijf", "Tien", "Twintig"]


def test_package_validation(admin_client):
    r = admin_client.post("/api/packages", json={"name": "Gratis", "lessons_count": 0, "price": "-1"})
    assert r.status_code == 400
    assert r.json["details"] == ["Lessons count must be greater than zero.", "Price must be zero or more."]


def test_delete_unreferenced_package(admin_client):
    package = admin_client.post("/api/packages", json={"name": "Proefles", "lessons_count": 1, "price": "50"}).json["package"]
    r = admin_client.delete(f"/api/packages/{package['id']}")
    assert r.json["outcome"] == "deleted"
    assert admin_client.get("/api/packages?all=1").json["packages"] == []


def test_delete_referenced_package_deactivates(admin_client, student_client):
    package = admin_client.post("/api/packages", json={"name": "Tien", "lessons_count": 10, "price": "560"}).json["package"]
    student_client.post("/api/payment-proofs", json={"lesson_package_id": package["id"], "proof_email": "p@example.com"})

    r = admin_client.delete(f"/api/packages/{package['id']}")
    assert r.json["outcome"] == "deactivated"
    assert student_client.get("/api/packages").json["packages"] == []
    proofs = student_client.get("/api/payment-proofs").json["payment_proofs"]
    assert proofs[0]["package_name"] == "Tien"
