KYC_ONBOARDING_JOURNEY = {
    "id": "kyc-onboarding",
    "name": "KYC Onboarding",
    "description": "Collects identity details, verifies the PAN and loads the credit profile.",
    "isActive": False,
    "createdAt": "2024-01-15T09:00:00Z",
    "updatedAt": "2024-01-15T09:00:00Z",
    "properties": [
        {"id": "p-name", "key": "name", "type": "STRING"},
        {"id": "p-dob", "key": "dob", "type": "DATE"},
        {
            "id": "p-pan",
            "key": "pan",
            "type": "STRING",
            "validationCondition": "pan.matches('[A-Z]{5}[0-9]{4}[A-Z]')",
        },
        {"id": "p-age", "key": "age", "type": "NUMBER"},
        {"id": "p-verified", "key": "panVerified", "type": "BOOLEAN"},
        {"id": "p-score", "key": "creditScore", "type": "NUMBER"},
    ],
    "nodes": [
        {
            "id": "n-details",
            "name": "Personal Details",
            "type": "input",
            "description": "Customer enters name, date of birth and PAN.",
            "properties": ["p-name", "p-dob", "p-pan"],
        },
        {
            "id": "n-verify",
            "name": "Verify PAN",
            "type": "loader",
            "description": "Calls the PAN verification service.",
            "properties": ["p-pan", "p-verified"],
        },
        {
            "id": "n-credit",
            "name": "Credit Profile",
            "type": "loader",
            "description": "Loads the bureau score.",
            "properties": ["p-score"],
        },
        {
            "id": "n-rejected",
            "name": "Rejected",
            "type": "dead_end",
            "description": "Verification failed.",
            "properties": [],
        },
    ],
    "functions": [
        {
            "referenceId": "fn-pan-verify",
            "name": "PAN Verification",
            "type": "API",
            "config": {
                "host": "https://kyc.example.com",
                "path": "/api/v1/pan/verify",
                "method": "POST",
                "headers": [
                    {"key": "Content-Type", "type": "constant", "value": "application/json"},
                    {"key": "X-Customer-Name", "type": "property", "value": "name"},
                ],
                "headerParams": {"X-Request-Id": "STRING"},
                "requestBody": [
                    {"id": "rb-pan", "apiField": "panNumber", "property": "pan"},
                    {"id": "rb-dob", "apiField": "dateOfBirth", "property": "dob"},
                ],
                "requestBodyPath": {"panNumber": "$.panNumber", "dateOfBirth": "$.dateOfBirth"},
                "timeoutMs": 30000,
            },
            "inputProperties": {"pan": "STRING", "dob": "DATE", "name": "STRING"},
            "outputProperties": {"panVerified": "BOOLEAN"},
        },
        {
            "referenceId": "fn-credit-score",
            "name": "Credit Bureau",
            "type": "KAFKA",
            "config": {"host": "kafka.example.com:9092", "path": "credit.requests"},
            "inputProperties": {"pan": "STRING"},
            "outputProperties": {"creditScore": "NUMBER"},
        },
    ],
    "mappings": [
        {
            "id": "m-verify",
            "name": "Verify PAN",
            "description": "Invoke the PAN verification API.",
            "nodeId": "n-verify",
            "functionId": "fn-pan-verify",
            "condition": "pan != null",
            "variableMappings": [
                {
                    "id": "input_pan",
                    "mappingType": "INPUT",
                    "strategy": "DIRECT",
                    "sourceVariableName": "pan",
                    "sourceVariableType": "STRING",
                    "sourceVariableExpression": "",
                    "mandatory": True,
                    "targetParameterName": "pan",
                    "targetParameterType": "STRING",
                    "transformationExpression": None,
                    "defaultValue": None,
                },
                {
                    "id": "output_panVerified",
                    "mappingType": "OUTPUT",
                    "strategy": "DIRECT",
                    "sourceVariableName": "panVerified",
                    "sourceVariableType": "BOOLEAN",
                    "sourceVariableExpression": "$.verified",
                    "mandatory": False,
                    "targetParameterName": "panVerified",
                    "targetParameterType": "BOOLEAN",
                    "transformationExpression": None,
                    "defaultValue": "false",
                },
            ],
        },
        {
            "id": "m-credit",
            "name": "Load credit score",
            "description": "",
            "nodeId": "n-credit",
            "functionId": "fn-credit-score",
            "condition": "",
        },
    ],
    "edges": [
        {"id": "e-1", "fromNodeId": "n-details", "toNodeId": "n-verify", "validationCondition": ""},
        {"id": "e-2", "fromNodeId": "n-verify", "toNodeId": "n-credit", "validationCondition": "panVerified == true"},
        {"id": "e-3", "fromNodeId": "n-verify", "toNodeId": "n-rejected", "validationCondition": "panVerified == false"},
    ],
}

EMPTY_JOURNEY_WITH_PLACEHOLDER = {
    "id": "draft",
    "name": "Draft Journey",
    "description": "A freshly created journey as the catalog returns it.",
    "properties": [],
    "nodes": [],
    "functions": [],
    "mappings": [],
    "edges": [{"id": "e-default", "fromNodeId": "start", "toNodeId": "end", "validationCondition": ""}],
}

EXAMPLE_JOURNEYS = {
    "kyc_onboarding": {
        "name": "KYC Onboarding",
        "description": "Identity capture, PAN verification and credit profile loading with a rejection dead end",
        "journey": KYC_ONBOARDING_JOURNEY,
    },
    "draft": {
        "name": "Draft Journey",
        "description": "An empty journey carrying the start/end placeholder edge",
        "journey": EMPTY_JOURNEY_WITH_PLACEHOLDER,
    },
}
