class MessAccessMiddleware:
    """Middleware to expose the requesting user's mess on the request"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        # Skip middleware for Django admin URLs to avoid interference
        if request.path.startswith('/django-admin/'):
            return self.get_response(request)

        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated and user.mess_id:
            request.user_mess_id = user.mess_id
        else:
            request.user_mess_id = None

        return self.get_response(request)
