def test_landing_page_for_visitors(make_client):
    r = make_client().get("/")
    assert r.status_code == 200
    assert "Connecting Books with Those Who Need Them" in r.text
    assert "Get Started" in r.text
    assert r.headers["X-Request-ID"]


def test_root_routes_donor_to_dashboard(donor_client):
    r = donor_client.get("/", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/donor"


def test_root_routes_receiver_to_dashboard(receiver_client):
    r = receiver_client.get("/", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/receiver"


def test_dashboards_require_login(make_client):
    client = make_client()
    for path in ("/donor", "/receiver"):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/auth"


def test_wrong_role_goes_back_home(receiver_client, donor_client):
    r = receiver_client.get("/donor", follow_redirects=False)
    assert r.headers["location"] == "/"
    r = donor_client.get("/receiver", follow_redirects=False)
    assert r.headers["location"] == "/"


def test_auth_page_redirects_signed_in_users(donor_client, make_client):
    assert make_client().get("/auth").status_code == 200
    r = donor_client.get("/auth", follow_redirects=False)
    assert r.status_code == 303


def test_donor_dashboard_renders(donor_client):
    r = donor_client.get("/donor")
    assert r.status_code == 200
    assert "My Books" in r.text
    assert "Welcome, Alice Donor" in r.text


def test_receiver_dashboard_offers_available_genres(donor_client, receiver_client, add_book):
    add_book(donor_client, "Dune", "Herbert", genre="Science Fiction")
    add_book(donor_client, "Emma", "Austen", genre="Classics")
    add_book(donor_client, "Untitled", "Anon")

    r = receiver_client.get("/receiver")
    assert r.status_code == 200
    assert '<option value="Science Fiction">' in r.text
    assert '<option value="Classics">' in r.text
