"""
Custom hooks for drf-spectacular to customize the OpenAPI schema.
"""


def keep_token_security_scheme(result, generator, request, public):
    """Drop auto-detected session/basic schemes; clients authenticate with a token."""
    schemes = result.get('components', {}).get('securitySchemes')
    if schemes is not None:
        result['components']['securitySchemes'] = {
            name: scheme for name, scheme in schemes.items() if name == 'TokenAuth'
        }
        for path_item in result.get('paths', {}).values():
            for operation in path_item.values():
                if isinstance(operation, dict) and 'security' in operation:
                    operation['security'] = [
                        requirement for requirement in operation['security']
                        if not requirement or 'TokenAuth' in requirement
                    ] or [{'TokenAuth': []}]
    return result
