"""
Shared fixtures: sample metadata documents and a fake OData service.
"""

import json
from collections import Counter
from typing import Any, Callable

import httpx
import pytest

from edm_forms.clients.odata_client import ODataHttpClient
from edm_forms.services.crud import CrudClient
from edm_forms.services.metadata_cache import MetadataCache

ENDPOINT = "http://odata.test/odata"

SHOP_METADATA = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0"
    xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx"
    xmlns:sap="http://www.sap.com/Protocols/SAPData">
  <edmx:DataServices>
    <Schema Namespace="Shop.Models" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Customer">
        <Key><PropertyRef Name="Id"/></Key>
        <Property Name="Id" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String" Nullable="false" MaxLength="100"/>
        <Property Name="Email" Type="Edm.String"/>
        <Property Name="Phone" Type="Edm.String"/>
        <Property Name="Notes" Type="Edm.String" MaxLength="2000"/>
        <Property Name="IsActive" Type="Edm.Boolean" Nullable="false"/>
        <NavigationProperty Name="Orders" Type="Collection(Shop.Models.Order)" Partner="Customer"/>
      </EntityType>
      <EntityType Name="Order">
        <Key><PropertyRef Name="Id"/></Key>
        <Property Name="Id" Type="Edm.Int32" Nullable="false"/>
        <Property Name="OrderNumber" Type="Edm.String" Nullable="false" MaxLength="20">
          <Annotation Term="Core.Description" String="Number printed on the invoice"/>
        </Property>
        <Property Name="OrderDate" Type="Edm.DateTimeOffset" Nullable="false"/>
        <Property Name="Total" Type="Edm.Decimal" Nullable="false"/>
        <Property Name="Quantity" Type="Edm.Int32"/>
        <Property Name="CustomerId" Type="Edm.Int32" Nullable="false"/>
        <NavigationProperty Name="Customer" Type="Shop.Models.Customer" Nullable="false" Partner="Orders"/>
        <NavigationProperty Name="Warehouse" Type="Shop.Models.Warehouse"/>
      </EntityType>
      <EntityType Name="Product">
        <Key><PropertyRef Name="Id"/></Key>
        <Property Name="Id" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String" Nullable="false" MaxLength="80"
            sap:label="Product name" sap:placeholder="e.g. Espresso beans"/>
        <Property Name="Price" Type="Edm.Decimal" Nullable="false"/>
        <Property Name="Website" Type="Edm.String"/>
        <Property Name="Photo" Type="Edm.Binary"/>
        <Property Name="Discontinued" Type="Edm.Boolean" Nullable="false"/>
        <Property Name="CategoryId" Type="Edm.Int32"/>
        <NavigationProperty Name="Category" Type="Shop.Models.Category"/>
      </EntityType>
      <EntityType Name="Category">
        <Key><PropertyRef Name="Id"/></Key>
        <Property Name="Id" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Title" Type="Edm.String"/>
      </EntityType>
      <EntityType Name="Warehouse">
        <Key><PropertyRef Name="Code"/></Key>
        <Property Name="Code" Type="Edm.String" Nullable="false"/>
      </EntityType>
      <Annotations Target="Shop.Models.Product/Price">
        <Annotation Term="Org.OData.Core.V1.Label" String="Unit price"/>
      </Annotations>
      <EntityContainer Name="Container">
        <EntitySet Name="Customer" EntityType="Shop.Models.Customer"/>
        <EntitySet Name="Order" EntityType="Shop.Models.Order"/>
        <EntitySet Name="Product" EntityType="Shop.Models.Product"/>
        <EntitySet Name="Categories" EntityType="Shop.Models.Category"/>
        <EntitySet Name="Warehouse" EntityType="Shop.Models.Warehouse"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>
"""

LEGACY_METADATA = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0"
    xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx"
    xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"
    xmlns:sap="http://www.sap.com/Protocols/SAPData">
  <edmx:DataServices m:DataServiceVersion="2.0">
    <Schema Namespace="LEGACY_SRV" xmlns="http://schemas.microsoft.com/ado/2008/09/edm">
      <EntityType Name="Supplier">
        <Key><PropertyRef Name="SupplierID"/></Key>
        <Property Name="SupplierID" Type="Edm.String" Nullable="false" MaxLength="10" sap:label="Supplier"/>
        <Property Name="CompanyName" Type="Edm.String" MaxLength="80"
            sap:label="Company" sap:quickinfo="Registered company name"/>
        <NavigationProperty Name="Items" Relationship="LEGACY_SRV.Supplier_Items"
            FromRole="FromRole_Supplier" ToRole="ToRole_Item"/>
      </EntityType>
      <EntityType Name="Item">
        <Key><PropertyRef Name="ItemNo"/></Key>
        <Property Name="ItemNo" Type="Edm.String" Nullable="false"/>
        <Property Name="Weight" Type="Edm.Double"/>
        <NavigationProperty Name="Supplier" Relationship="LEGACY_SRV.Supplier_Items"
            FromRole="ToRole_Item" ToRole="FromRole_Supplier"/>
      </EntityType>
      <Association Name="Supplier_Items">
        <End Type="LEGACY_SRV.Supplier" Multiplicity="1" Role="FromRole_Supplier"/>
        <End Type="LEGACY_SRV.Item" Multiplicity="*" Role="ToRole_Item"/>
      </Association>
      <EntityContainer Name="LEGACY_SRV_Entities" m:IsDefaultEntityContainer="true">
        <EntitySet Name="SupplierSet" EntityType="LEGACY_SRV.Supplier"/>
        <EntitySet Name="ItemSet" EntityType="LEGACY_SRV.Item"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>
"""

CUSTOMERS = [
    {"Id": 1, "Name": "Ada Lovelace"},
    {"Id": 2, "Name": "Alan Turing"},
]

CATEGORIES = [
    {"Id": 10, "Title": "Coffee"},
    {"Id": 11},
]


Handler = Callable[[httpx.Request], httpx.Response]


class FakeODataService:
    """
    In-memory OData service behind an httpx.MockTransport.

    Serves the metadata document and canned collections, counts requests per
    path and lets tests override individual routes.
    """

    def __init__(self, metadata: str = SHOP_METADATA):
        self.metadata = metadata
        self.collections: dict[str, list[dict[str, Any]]] = {
            "Customer": list(CUSTOMERS),
            "Categories": list(CATEGORIES),
            "Order": [],
        }
        self.routes: dict[tuple[str, str], Handler] = {}
        self.calls: Counter = Counter()
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def respond(self, method: str, path: str, status_code: int, body: Any = None) -> None:
        self.route(
            method,
            path,
            lambda request: httpx.Response(status_code, json=body),
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls[(request.method, path)] += 1
        self.requests.append(request)

        handler = self.routes.get((request.method, path))
        if handler is not None:
            return handler(request)

        if path == "/odata/$metadata":
            return httpx.Response(200, text=self.metadata)

        name = path.removeprefix("/odata/")
        if request.method == "GET" and name in self.collections:
            return httpx.Response(200, json={"value": self.collections[name]})
        if request.method == "POST" and name in self.collections:
            record = {"Id": len(self.collections[name]) + 1, **json.loads(request.content)}
            self.collections[name].append(record)
            return httpx.Response(201, json=record)

        return httpx.Response(404, json={"error": {"code": "NotFound", "message": "Not found"}})

    def metadata_calls(self) -> int:
        return self.calls[("GET", "/odata/$metadata")]


@pytest.fixture
def service() -> FakeODataService:
    return FakeODataService()


@pytest.fixture
def http_client(service) -> ODataHttpClient:
    return ODataHttpClient(transport=httpx.MockTransport(service))


@pytest.fixture
def metadata_cache(http_client) -> MetadataCache:
    return MetadataCache(http=http_client, ttl_seconds=300, coalesce_window_seconds=0.3)


@pytest.fixture
def crud(http_client, metadata_cache) -> CrudClient:
    return CrudClient(endpoint=ENDPOINT, http=http_client, metadata_cache=metadata_cache)
