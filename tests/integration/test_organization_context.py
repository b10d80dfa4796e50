"""
Integration tests for organization scoping of the API.
"""


class TestOrganizationHeader:

    def test_missing_header(self, client, session):
        response = client.get('/cart')

        assert response.status_code == 400
        assert 'X-Organization-ID' in response.get_json()['message']

    def test_unknown_organization(self, client, session):
        response = client.get('/cart', headers={'X-Organization-ID': '9999'})
        assert response.status_code == 404

    def test_slug_is_accepted(self, client, organization):
        response = client.get('/cart', headers={'X-Organization-ID': organization.slug})

        assert response.status_code == 200
        assert response.get_json() == {'carts': []}

    def test_inactive_organization_is_rejected(self, client, session, organization):
        organization.active = False
        session.commit()

        response = client.get('/price-lists', headers={'X-Organization-ID': str(organization.id)})
        assert response.status_code == 404


class TestIsolation:
    """One organization never reaches another organization's data."""

    def test_cart_of_other_organization_is_not_found(self, client, other_organization, quote_cart):
        headers = {'X-Organization-ID': str(other_organization.id)}

        assert client.get(f'/cart/{quote_cart.id}', headers=headers).status_code == 404
        assert client.post(f'/cart/{quote_cart.id}/activate', headers=headers).status_code == 404

    def test_price_lists_of_other_organization_are_hidden(self, client, other_organization, default_list):
        headers = {'X-Organization-ID': str(other_organization.id)}

        assert client.get('/price-lists', headers=headers).get_json() == {'priceLists': []}
        assert client.get(f'/price-lists/{default_list.id}', headers=headers).status_code == 404

    def test_cart_listing_is_scoped(self, client, org_headers, other_organization, quote_cart):
        mine = client.get('/cart', headers=org_headers).get_json()['carts']
        theirs = client.get('/cart', headers={'X-Organization-ID': str(other_organization.id)}).get_json()['carts']

        assert [c['id'] for c in mine] == [quote_cart.id]
        assert theirs == []


class TestErrorHandlers:

    def test_unknown_route_returns_json(self, client, session):
        response = client.get('/no-existe')

        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_wrong_method_returns_json(self, client, session):
        response = client.delete('/price-lists')
        assert response.status_code == 405

    def test_metrics_endpoint(self, client, session):
        client.get('/no-existe')
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'http_requests_total' in response.data
