"""
Constants used throughout the ITSM OData library.
"""

# Transport metadata key attached to every OData payload
ODATA_METADATA_KEY = "@odata.context"

# Primary identifier of every business object record
PRIMARY_KEY = "RecId"

# The service never returns more than 100 records per request
MAX_PAGE_SIZE = 100

# Full-text search pages through results 20 at a time
FULLTEXT_PAGE_SIZE = 20

DEFAULT_ERROR_MESSAGE = "Request failed"

# Service paths, relative to the tenant URL
ODATA_BUSINESS_OBJECT_PATH = "/api/odata/businessobject"
ODATA_METADATA_PATH = "/api/odata/{collection}/$metadata"
ATTACHMENT_PATH = "/api/rest/Attachment"
FULLTEXT_SEARCH_PATH = "/api/rest/search/fulltext"
SERVICE_REQUEST_PATH = "/api/rest/ServiceRequest/new"
TEMPLATE_SUBSCRIPTIONS_PATH = "/api/rest/Template/{user_id}/_All_"

# Business objects used by discovery and the service request handlers
EMPLOYEE_OBJECT = "Frs_CompositeContract_Contacts"
SERVICE_REQUEST_PARAMS_COLLECTION = "ServiceReqParams"
TEMPLATE_PARAMS_COLLECTION = "ServiceReqTemplateParams"

# Poll trigger kinds mapped to the timestamp field they watch
TRIGGER_DATE_FIELDS = {
    "objectCreated": "CreatedDateTime",
    "objectUpdated": "LastModDateTime",
}

# Template parameter display types and the coercion type applied to them
TEMPLATE_DISPLAY_TYPES = {
    "number": "number",
    "numeric": "number",
    "money": "number",
    "checkbox": "boolean",
    "boolean": "boolean",
}

# Template parameter display types whose values reference a validation record
TEMPLATE_LIST_DISPLAY_TYPES = {"combo", "dropdown", "list", "lookup"}
