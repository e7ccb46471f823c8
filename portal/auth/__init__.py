"""
Authentication Package

This package handles the captive portal sign-in against Microsoft Entra ID
using the OpenID Connect authorization code flow with PKCE.

Key responsibilities:
- Grant URL validation against the trusted network domain
- PKCE and state generation for each sign-in attempt
- Code exchange through MSAL and session bookkeeping
- Sign-out at the identity provider

Modules:
- routes: Public authentication endpoints (/auth/signin, /auth/openid/return, /auth/signout)
- flow: Sign-in flow controller
- provider: Identity provider interface and MSAL implementation
- redirects: Redirect target validation
- pkce: PKCE code generation
- state: Opaque state codec
- errors: Flow exception hierarchy

The authentication flow:
1. Access point sends the guest to /auth/signin with its grant URL
2. Guest authenticates with Microsoft Entra ID
3. Entra ID posts the code to /auth/openid/return
4. Portal validates state, redeems the code, marks the session signed in
5. Guest is redirected to the grant URL and admitted to the network
"""
