from rest_framework.response import Response


def error_response(exc):
    """Turn a WorkflowError into the API error payload"""
    return Response(exc.as_payload(), status=exc.status_code)
