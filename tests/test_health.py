def test_ping(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['service'] == 'clinicdesk'


def test_ready_checks_the_database(client):
    response = client.get('/health/ready')
    assert response.status_code == 200
    assert response.get_json()['database'] == 'connected'


def test_live(client):
    assert client.get('/health/live').get_json()['status'] == 'alive'


def test_unknown_route_is_json(client):
    response = client.get('/api/nowhere')
    assert response.status_code == 404
    assert response.get_json()['code'] == 'NOT_FOUND'


def test_security_headers(client):
    response = client.get('/health')
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
