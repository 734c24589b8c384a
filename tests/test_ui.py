import json

from sqlalchemy.exc import OperationalError
from sqlmodel import Session


def test_donor_adds_book_through_form(donor_client):
    r = donor_client.post(
        "/ui/donor/books",
        data={"title": "Dune", "author": "Frank Herbert", "genre": "Science Fiction"},
    )
    assert r.status_code == 200
    assert "Book added successfully" in r.text
    trigger = json.loads(r.headers["HX-Trigger"])
    assert trigger == {"donor-books-refresh": True, "close-book-modal": True}

    listing = donor_client.get("/ui/donor/books")
    assert "Dune" in listing.text
    assert "Available" in listing.text


def test_book_form_reports_missing_fields(donor_client):
    r = donor_client.post("/ui/donor/books", data={"title": "", "author": ""})
    assert r.status_code == 400
    assert "Title is required." in r.text
    assert "Author is required." in r.text
    assert "HX-Trigger" not in r.headers
    assert "You haven't added any books yet." in donor_client.get("/ui/donor/books").text


def test_donor_search_fragment(donor_client, add_book):
    add_book(donor_client, "Dune", "Herbert")
    add_book(donor_client, "Emma", "Austen")
    r = donor_client.get("/ui/donor/books", params={"q": "emma"})
    assert "Emma" in r.text
    assert "Dune" not in r.text

    r = donor_client.get("/ui/donor/books", params={"q": "zzz"})
    assert "No books match your search criteria." in r.text


def test_delete_someone_elses_book_shows_error(donor_client, make_client, signup, add_book):
    book = add_book(donor_client)
    other = make_client()
    signup(other, "mallory@bookshare.org", "donor", "Mallory")

    r = other.post(f"/ui/donor/books/{book['id']}/delete")
    assert r.status_code == 403
    assert "You can only delete books you donated." in r.text
    assert "Intro to Algorithms" in donor_client.get("/ui/donor/books").text


def test_delete_own_book(donor_client, add_book):
    book = add_book(donor_client)
    r = donor_client.post(f"/ui/donor/books/{book['id']}/delete")
    assert r.status_code == 200
    assert "Book deleted successfully" in r.text
    assert "Intro to Algorithms" not in r.text


def test_receiver_request_flow_through_fragments(donor_client, receiver_client, add_book):
    book = add_book(donor_client)

    books = receiver_client.get("/ui/receiver/books")
    assert "Request Book" in books.text
    assert "Alice Donor" in books.text

    form = receiver_client.get(f"/ui/receiver/books/{book['id']}/request-form")
    assert 'Send a request to the donor for "Intro to Algorithms"' in form.text

    r = receiver_client.post(
        "/ui/receiver/requests", data={"book_id": str(book["id"]), "message": "Need it for class"}
    )
    assert r.status_code == 200
    assert "Request Sent" in r.text
    assert "receiver-requests-refresh" in json.loads(r.headers["HX-Trigger"])

    assert "Already Requested" in receiver_client.get("/ui/receiver/books").text

    again = receiver_client.post("/ui/receiver/requests", data={"book_id": str(book["id"])})
    assert again.status_code == 409
    assert "Already Requested" in again.text
    assert "You have already requested this book" in again.text

    mine = receiver_client.get("/ui/receiver/requests")
    assert "Alice Donor" in mine.text
    assert "alice@bookshare.org" not in mine.text
    assert "555-0100" not in mine.text

    incoming = donor_client.get("/ui/donor/requests")
    assert "Bob Reader" in incoming.text
    assert "bob@bookshare.org" in incoming.text
    assert "Need it for class" in incoming.text

    [req] = receiver_client.get("/requests/mine").json()
    decided = donor_client.post(f"/ui/donor/requests/{req['id']}/status", data={"status": "approved"})
    assert decided.status_code == 200
    assert "Request approved successfully" in decided.text
    assert json.loads(decided.headers["HX-Trigger"]) == {"donor-books-refresh": True}

    mine = receiver_client.get("/ui/receiver/requests")
    assert "alice@bookshare.org" in mine.text
    assert "555-0100" in mine.text


def test_deciding_twice_shows_error(donor_client, receiver_client, add_book):
    book = add_book(donor_client)
    req = receiver_client.post("/requests/", json={"book_id": book["id"]}).json()

    donor_client.post(f"/ui/donor/requests/{req['id']}/status", data={"status": "rejected"})
    r = donor_client.post(f"/ui/donor/requests/{req['id']}/status", data={"status": "approved"})
    assert r.status_code == 409
    assert "Request was already rejected." in r.text


def test_receiver_filters(donor_client, receiver_client, add_book):
    add_book(donor_client, "Dune", "Herbert", genre="Science Fiction")
    add_book(donor_client, "Emma", "Austen", genre="Classics", description="A comedy of manners")

    r = receiver_client.get("/ui/receiver/books", params={"genre": "Classics"})
    assert "Emma" in r.text and "Dune" not in r.text

    r = receiver_client.get("/ui/receiver/books", params={"q": "manners"})
    assert "Emma" in r.text and "Dune" not in r.text

    r = receiver_client.get("/ui/receiver/books", params={"genre": "Poetry"})
    assert "No books match your search criteria." in r.text


def test_empty_catalog_message(receiver_client):
    r = receiver_client.get("/ui/receiver/books")
    assert "No books are currently available." in r.text


def test_withdraw_through_fragment(donor_client, receiver_client, add_book):
    book = add_book(donor_client)
    req = receiver_client.post("/requests/", json={"book_id": book["id"]}).json()

    r = receiver_client.post(f"/ui/receiver/requests/{req['id']}/withdraw")
    assert r.status_code == 200
    assert "Request withdrawn" in r.text
    assert "Request Book" in receiver_client.get("/ui/receiver/books").text


def test_fragments_enforce_roles(donor_client, receiver_client):
    assert receiver_client.get("/ui/donor/books").status_code == 403
    assert donor_client.get("/ui/receiver/books").status_code == 403


def test_store_failure_shows_error_flash(donor_client, monkeypatch):
    def broken_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(Session, "commit", broken_commit)
    r = donor_client.post("/ui/donor/books", data={"title": "Dune", "author": "Frank Herbert"})
    monkeypatch.undo()

    assert r.status_code == 503
    assert "Failed to add book" in r.text
    assert "HX-Trigger" not in r.headers
    assert "Dune" not in donor_client.get("/ui/donor/books").text


def test_dashboard_swaps_server_error_fragments(donor_client):
    r = donor_client.get("/donor")
    assert "if (code >= 400) {" in r.text
